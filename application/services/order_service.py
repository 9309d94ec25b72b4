"""
订单应用服务 - 创建订单、生成支付凭据、查询支付状态

价格一律以服务端价目表为准：客户端价格只用于比对，不参与金额计算。
"""
from __future__ import annotations

from decimal import Decimal
from typing import Callable, Optional

from application.dtos.orders import (
    CatalogEntryOut,
    CheckoutSessionResponse,
    CreateCheckoutOrderResponse,
    CreateLegacyOrderResponse,
    CreateOrderRequest,
    CreateTrademarkOrderRequest,
    CreateTrademarkOrderResponse,
    LegacyPaymentParams,
    PaymentStatusResponse,
    PricesResponse,
    TrademarkPricingOut,
)
from application.dtos.payments import (
    CheckoutSessionRequest,
    LegacyCartLine,
    LegacyCustomer,
    LegacyPaymentForm,
    LegacyPurchaseRequest,
)
from application.ports.payment_gateway import CheckoutGateway, LegacyGateway
from application.services.mirror_sync import MirrorSync
from core.logging_config import get_logger
from domain.common.exceptions import (
    GatewayNotConfiguredException,
    OrderNotFoundException,
    OrderNotPendingException,
    PriceValidationException,
)
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    CustomerData,
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    TrademarkData,
    TrademarkOrder,
    TrademarkStatus,
)
from domain.order.identifiers import TRADEMARK_ORDER_PREFIX, generate_order_id, is_trademark_order_id
from domain.pricing.trademark import calculate_trademark_price, validate_nice_classes
from domain.pricing.validator import PriceValidator


logger = get_logger(__name__)

VAT_LINE_ARTICLE = "ДДС (20%)"


class OrderApplicationService:
    """订单应用服务 - 处理下单与支付凭据"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        validator: PriceValidator,
        *,
        legacy_gateway: Optional[LegacyGateway] = None,
        checkout_gateway: Optional[CheckoutGateway] = None,
        mirror: Optional[MirrorSync] = None,
        frontend_url: str = "http://localhost:3000",
        backend_url: str = "http://localhost:8000",
        notify_path: str = "/api/v1/payments/notify",
        order_expiry_hours: int = 24,
    ) -> None:
        self._uow_factory = uow_factory
        self._validator = validator
        self._legacy = legacy_gateway
        self._checkout = checkout_gateway
        self._mirror = mirror or MirrorSync(None)
        self._frontend_url = frontend_url.rstrip("/")
        self._backend_url = backend_url.rstrip("/")
        self._notify_path = notify_path
        self._order_expiry_hours = order_expiry_hours

    # -- catalog -----------------------------------------------------------

    def get_prices(self) -> PricesResponse:
        catalog = self._validator.catalog

        def _out(entry) -> CatalogEntryOut:
            return CatalogEntryOut(id=entry.id, name=entry.name, price=entry.price, documents=list(entry.documents))

        return PricesResponse(
            documents=[_out(e) for e in catalog.list_documents()],
            packages=[_out(e) for e in catalog.list_packages()],
            vat_rate=catalog.vat_rate,
            currency=catalog.currency,
        )

    # -- regular orders ----------------------------------------------------

    async def _create_pending_order(
        self, req: CreateOrderRequest, payment_method: PaymentMethod, client_ip: Optional[str]
    ) -> Order:
        result = self._validator.validate(req.items)
        if not result.is_valid:
            logger.warning("order_price_validation_failed", errors=result.errors, client_ip=client_ip)
            raise PriceValidationException(result.errors)

        catalog = self._validator.catalog
        items = []
        for item in req.items:
            entry = catalog.resolve(item.id, item.type)
            items.append(
                OrderItem(
                    id=item.id,
                    type=item.type,
                    name=item.name or entry.name,
                    description=item.description,
                    price=entry.price,
                    form_data=item.form_data,
                    document_ids=item.document_ids or list(entry.documents),
                )
            )

        order = Order.create_pending(
            order_id=generate_order_id(),
            items=items,
            subtotal=result.expected_amount,
            vat=result.expected_vat,
            total=result.expected_total,
            currency=catalog.currency,
            customer=CustomerData(
                email=req.customer_email,
                first_name=req.customer_first_name,
                last_name=req.customer_last_name,
                phone=req.customer_phone,
                ip=client_ip,
            ),
            payment_method=payment_method,
            user_id=req.user_id,
            expiry_hours=self._order_expiry_hours,
        )
        async with self._uow_factory() as uow:
            order = await uow.order_repository.create(order)
        await self._mirror.publish(order)
        return order

    def _legacy_form(self, order: Order) -> LegacyPaymentForm:
        if self._legacy is None:
            raise GatewayNotConfiguredException("mypos")
        cart = [
            LegacyCartLine(article=item.name, quantity=1, price=item.price, currency=order.currency)
            for item in order.items
        ]
        cart.append(LegacyCartLine(article=VAT_LINE_ARTICLE, quantity=1, price=order.vat, currency=order.currency))
        c = order.customer
        customer = LegacyCustomer(
            email=c.email or "noemail@example.com",
            first_name=c.first_name or "Customer",
            last_name=c.last_name or "User",
            phone=c.phone or "",
        )
        return self._legacy.build_purchase_form(
            LegacyPurchaseRequest(
                order_id=order.order_id,
                amount=order.expected_amount,
                currency=order.currency,
                cart=cart,
                customer=customer,
                url_ok=f"{self._frontend_url}/checkout/success?orderId={order.order_id}",
                url_cancel=f"{self._frontend_url}/checkout/cancel",
                url_notify=f"{self._backend_url}{self._notify_path}",
                note=f"Order {order.order_id}",
            )
        )

    async def create_legacy_order(
        self, req: CreateOrderRequest, *, client_ip: Optional[str] = None
    ) -> CreateLegacyOrderResponse:
        if self._legacy is None:
            raise GatewayNotConfiguredException("mypos")
        order = await self._create_pending_order(req, PaymentMethod.MYPOS_EMBEDDED, client_ip)
        form = self._legacy_form(order)
        return CreateLegacyOrderResponse(
            order_id=order.order_id,
            amount=order.subtotal,
            vat=order.vat,
            total=order.total,
            currency=order.currency,
            payment_params=LegacyPaymentParams(endpoint=form.endpoint, fields=form.as_dict()),
        )

    async def get_legacy_payment_params(self, order_id: str) -> LegacyPaymentParams:
        """为已存在的待支付订单重新生成签名表单"""
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.status != OrderStatus.PENDING:
            raise OrderNotPendingException(order_id, order.status.value)
        form = self._legacy_form(order)
        return LegacyPaymentParams(endpoint=form.endpoint, fields=form.as_dict())

    async def create_checkout_order(
        self, req: CreateOrderRequest, *, client_ip: Optional[str] = None
    ) -> CreateCheckoutOrderResponse:
        if self._checkout is None:
            raise GatewayNotConfiguredException("stripe")
        order = await self._create_pending_order(req, PaymentMethod.STRIPE, client_ip)
        session = await self._checkout.create_checkout_session(
            CheckoutSessionRequest(
                order_id=order.order_id,
                amount=order.expected_amount,
                currency=order.currency,
                customer_email=order.customer.email,
                description=f"Order {order.order_id}",
                return_url=f"{self._frontend_url}/checkout/success?orderId={order.order_id}",
                order_type="order",
            )
        )
        await self._remember_session(order.order_id, session.session_id, trademark=False)
        return CreateCheckoutOrderResponse(
            order_id=order.order_id,
            amount=order.subtotal,
            vat=order.vat,
            total=order.total,
            currency=order.currency,
            client_secret=session.client_secret,
        )

    async def _remember_session(self, order_id: str, session_id: str, *, trademark: bool) -> None:
        async with self._uow_factory() as uow:
            repo = uow.trademark_order_repository if trademark else uow.order_repository
            current = await repo.get_by_order_id(order_id)
            if current is None:
                return
            current.payment_data.merge(checkout_session_id=session_id)
            await repo.update_by_order_id(order_id, payment_data=current.payment_data)

    async def create_checkout_session(self, order_id: str, order_type: str) -> CheckoutSessionResponse:
        """为已存在的待支付订单创建新的 Checkout Session"""
        if self._checkout is None:
            raise GatewayNotConfiguredException("stripe")

        trademark = order_type == "trademark"
        async with self._uow_factory(readonly=True) as uow:
            if trademark:
                order = await uow.trademark_order_repository.get_by_order_id(order_id)
            else:
                order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        if order.status.value != OrderStatus.PENDING.value:
            raise OrderNotPendingException(order_id, order.status.value)

        if trademark:
            return_url = f"{self._frontend_url}/trademark/success?orderId={order_id}"
        else:
            return_url = f"{self._frontend_url}/checkout/success?orderId={order_id}"
        session = await self._checkout.create_checkout_session(
            CheckoutSessionRequest(
                order_id=order_id,
                amount=order.expected_amount,
                currency=order.currency,
                customer_email=order.customer.email or None,
                description=f"Order {order_id}",
                return_url=return_url,
                order_type=order_type,
            )
        )
        await self._remember_session(order_id, session.session_id, trademark=trademark)
        return CheckoutSessionResponse(order_id=order_id, client_secret=session.client_secret)

    # -- trademark orders ----------------------------------------------------

    async def create_trademark_order(self, req: CreateTrademarkOrderRequest) -> CreateTrademarkOrderResponse:
        if self._checkout is None:
            raise GatewayNotConfiguredException("stripe")

        tm = req.trademark
        nice_classes = validate_nice_classes(tm.nice_classes)
        pricing = calculate_trademark_price(
            len(nice_classes),
            len(tm.priority_claims),
            is_collective=tm.is_collective,
            is_certified=tm.is_certified,
        )
        c = req.customer
        order = TrademarkOrder(
            id=None,
            order_id=generate_order_id(TRADEMARK_ORDER_PREFIX),
            status=TrademarkStatus.PENDING,
            customer=CustomerData(
                email=c.email,
                first_name=c.first_name,
                last_name=c.last_name,
                phone=c.phone,
                address=c.address,
                city=c.city,
                postal_code=c.postal_code,
                is_company=c.is_company,
                company_name=c.company_name,
                company_eik=c.company_eik,
                company_address=c.company_address,
            ),
            trademark=TrademarkData(
                mark_type=tm.mark_type,
                mark_text=tm.mark_text,
                goods_and_services=tm.goods_and_services,
                nice_classes=nice_classes,
                is_collective=tm.is_collective,
                is_certified=tm.is_certified,
                priority_claims=[p.model_dump() for p in tm.priority_claims],
            ),
            pricing=pricing,
            user_id=req.user_id,
        )
        async with self._uow_factory() as uow:
            order = await uow.trademark_order_repository.create(order)

        session = await self._checkout.create_checkout_session(
            CheckoutSessionRequest(
                order_id=order.order_id,
                amount=pricing.total,
                currency=pricing.currency,
                customer_email=c.email,
                description=f"Trademark application {order.order_id}",
                return_url=f"{self._frontend_url}/trademark/success?orderId={order.order_id}",
                order_type="trademark",
            )
        )
        await self._remember_session(order.order_id, session.session_id, trademark=True)
        return CreateTrademarkOrderResponse(
            order_id=order.order_id,
            pricing=TrademarkPricingOut(
                subtotal=pricing.subtotal, vat=pricing.vat, total=pricing.total, currency=pricing.currency
            ),
            client_secret=session.client_secret,
        )

    # -- status ---------------------------------------------------------------

    async def get_payment_status(self, order_id: str) -> PaymentStatusResponse:
        async with self._uow_factory(readonly=True) as uow:
            if is_trademark_order_id(order_id):
                order = await uow.trademark_order_repository.get_by_order_id(order_id)
            else:
                order = await uow.order_repository.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        amount: Decimal = order.paid_amount if order.paid_amount is not None else order.expected_amount
        return PaymentStatusResponse(
            order_id=order_id,
            status=order.status.value,
            paid=order.is_paid,
            amount=amount,
            currency=order.currency,
            paid_at=order.paid_at,
        )
