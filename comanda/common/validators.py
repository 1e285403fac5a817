"""
Validadores específicos para Brasil
"""
import re
from typing import Optional


def normalize_brazil_phone(phone: str) -> str:
    """
    Normaliza telefone brasileiro para apenas dígitos, sem código do país.
    Formatos aceitos:
    - +55 (11) 98765-4321
    - 5511987654321
    - (11) 98765-4321
    - 11987654321 / 1132654321 (fixo)
    """
    cleaned = re.sub(r'[\s\-\(\)\+\.]', '', phone or '')
    if not cleaned.isdigit():
        raise ValueError('Telefone deve conter apenas números')

    if len(cleaned) in (12, 13) and cleaned.startswith('55'):
        cleaned = cleaned[2:]

    if len(cleaned) not in (10, 11):
        raise ValueError('Telefone deve ter DDD e 8 ou 9 dígitos')

    return cleaned


def validate_brazil_phone(phone: str) -> bool:
    try:
        normalize_brazil_phone(phone)
        return True
    except ValueError:
        return False


def normalize_cep(cep: Optional[str]) -> Optional[str]:
    """Normaliza CEP para o formato 00000-000. Vazio vira None."""
    if cep is None:
        return None
    cleaned = re.sub(r'\D', '', cep)
    if not cleaned:
        return None
    if len(cleaned) != 8:
        raise ValueError('CEP deve ter 8 dígitos')
    return f"{cleaned[:5]}-{cleaned[5:]}"
