from fastapi import APIRouter

from comanda.common.clock import store_now
from comanda.dependencies.dbDependecies import async_db_dependency
from comanda.dependencies.storeDependencies import StoreId
from comanda.modules.catalog.service import CatalogService
from comanda.modules.coupons.evaluator import normalize_code
from comanda.modules.coupons.schemas import CouponValidateRequest, CouponValidateResponse
from comanda.modules.coupons.service import CouponService

coupons_router = APIRouter(prefix="/coupons", tags=["Coupons"])


@coupons_router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(request: CouponValidateRequest, store_id: StoreId, db: async_db_dependency):
    """Valida o cupom contra o carrinho atual. Não consome usos."""
    cart = await CatalogService(db).build_cart(store_id, request.items)
    decision = await CouponService(db).evaluate(store_id, request.code, cart, request.customer_phone, store_now())

    if not decision.accepted:
        return CouponValidateResponse(
            valid=False,
            code=normalize_code(request.code),
            rejection=decision.rejection,
            message=decision.message
        )
    return CouponValidateResponse(
        valid=True,
        code=decision.application.code,
        discount_amount=decision.application.discount_amount,
        free_shipping=decision.application.free_shipping
    )
