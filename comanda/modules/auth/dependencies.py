"""
Dependencias de autenticación para FastAPI.

Los tokens son emitidos por el servicio externo de autenticación; aquí sólo
se validan la firma y el contexto de tienda (claims: sub, store_id, role).
"""
from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt

from comanda.modules.auth.schemas import AuthContext
from comanda.core.config import settings

# Security scheme
security = HTTPBearer()
optional_security = HTTPBearer(auto_error=False)

class AuthDependencies:
    """Dependencias de autenticación reutilizables."""

    @staticmethod
    def get_auth_context(
        request: Request,
        credentials: HTTPAuthorizationCredentials = Depends(security)
    ) -> AuthContext:
        """
        Obtener contexto de autenticación del operador.
        El store_id del token debe coincidir con el header X-Store-ID.
        """
        credentials_exception = HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Não foi possível validar as credenciais",
            headers={"WWW-Authenticate": "Bearer"},
        )

        try:
            payload = jwt.decode(
                credentials.credentials,
                settings.APP_SECRET_STRING,
                algorithms=[settings.ALGORITHM]
            )
            user_id = payload.get("sub")
            token_store = payload.get("store_id")
            if user_id is None:
                raise credentials_exception
            user_uuid = UUID(str(user_id))
            store_id = UUID(str(token_store)) if token_store else None
        except (jwt.PyJWTError, ValueError):
            raise credentials_exception

        header_store = getattr(request.state, "store_id", None)
        if header_store and store_id and header_store != store_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Você não tem acesso a esta loja"
            )

        return AuthContext(
            user_id=user_uuid,
            store_id=store_id or header_store,
            user_role=payload.get("role")
        )

    @staticmethod
    def get_optional_auth_context(
        request: Request,
        credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security)
    ) -> Optional[AuthContext]:
        """Contexto del operador cuando hay token (canales públicos lo omiten)."""
        if credentials is None:
            return None
        return AuthDependencies.get_auth_context(request, credentials)

    @staticmethod
    def require_role(allowed_roles: list[str]):
        """
        Dependencia para requerir roles específicos.
        """
        def role_checker(auth_context: AuthContext = Depends(AuthDependencies.get_auth_context)):
            if not auth_context.store_id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="É necessário selecionar uma loja"
                )

            if auth_context.user_role not in allowed_roles:
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Requer um destes perfis: {', '.join(allowed_roles)}"
                )

            return auth_context
        return role_checker

    @staticmethod
    def require_staff():
        """Dependencia para operadores de caixa e gerência."""
        return AuthDependencies.require_role(["owner", "admin", "manager", "cashier"])

# Instancias de dependencias
get_auth_context = AuthDependencies.get_auth_context
get_optional_auth_context = AuthDependencies.get_optional_auth_context
require_staff = AuthDependencies.require_staff
