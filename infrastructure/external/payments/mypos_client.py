"""
myPOS Checkout (IPC v1.4) adapter.

Purchases are signed forms the browser posts to the gateway; status queries and
refunds are server-to-server form POSTs. Every request starts with the common
prefix (IPCmethod, IPCVersion, IPCLanguage, SID, walletnumber) and ends with
``Signature``.
"""
from __future__ import annotations

import json
from decimal import Decimal
from typing import Any, Optional, Sequence
from urllib.parse import parse_qsl, urlencode

import httpx

from application.dtos.payments import (
    LegacyPaymentForm,
    LegacyPurchaseRequest,
    LegacyTransactionResult,
)
from core.settings import MyPosSettings, PaymentSettings
from domain.pricing.money import format_amount
from infrastructure.external.payments.base import BasePaymentClient, RETRYABLE_ERRORS, UpstreamServerError
from infrastructure.external.payments.exceptions import PaymentProviderError, PaymentRecoverableError
from infrastructure.external.payments.signing import (
    RsaSigner,
    RsaVerifier,
    SignablePayload,
    load_key_material,
)
from shared.codes.payment_codes import LEGACY_STATUS_SUCCESS


IPC_PURCHASE = "IPCPurchase"
IPC_GET_TXN_STATUS = "IPCGetTxnStatus"
IPC_REFUND = "IPCRefund"

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


class MyPosClient(BasePaymentClient):
    provider = "mypos"

    def __init__(
        self,
        *,
        sid: str,
        wallet_number: str,
        key_index: int,
        signer: RsaSigner,
        verifier: RsaVerifier,
        endpoint: str,
        language: str = "bg",
        version: str = "1.4",
        skip_signature_verification: bool = False,
        timeouts: Optional[dict[str, float]] = None,
        retry: Optional[dict[str, Any]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        super().__init__(timeouts=timeouts, retry=retry, transport=transport)
        self.sid = sid
        self.wallet_number = wallet_number
        self.key_index = key_index
        self.endpoint = endpoint
        self.language = language
        self.version = version
        self.skip_signature_verification = skip_signature_verification
        self._signer = signer
        self._verifier = verifier

    @classmethod
    def from_settings(
        cls,
        cfg: MyPosSettings,
        payment: Optional[PaymentSettings] = None,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> "MyPosClient":
        signer = RsaSigner(load_key_material(cfg.private_key or "", name="myPOS private key"))
        verifier = RsaVerifier(
            load_key_material(cfg.public_cert or "", name="myPOS public certificate"),
            hash_name=cfg.signature_hash,
            separator=cfg.signature_separator,
            base64_message=cfg.signature_base64_message,
        )
        timeouts = retry = None
        if payment is not None:
            timeouts = payment.timeouts.model_dump()
            retry = {"max": payment.retry.max, "base": payment.retry.base_backoff}
        return cls(
            sid=cfg.sid or "",
            wallet_number=cfg.wallet_number or "",
            key_index=cfg.key_index,
            signer=signer,
            verifier=verifier,
            endpoint=cfg.endpoint,
            language=cfg.language,
            version=cfg.version,
            skip_signature_verification=cfg.skip_signature_verification,
            timeouts=timeouts,
            retry=retry,
            transport=transport,
        )

    # -- signing -----------------------------------------------------------

    def build_signed_request(
        self,
        method: str,
        fields: Sequence[tuple[str, object]],
        *,
        language: Optional[str] = None,
    ) -> SignablePayload:
        prefix = [
            ("IPCmethod", method),
            ("IPCVersion", self.version),
            ("IPCLanguage", language or self.language),
            ("SID", self.sid),
            ("walletnumber", self.wallet_number),
        ]
        return self._signer.sign(SignablePayload.of([*prefix, *fields]))

    def build_purchase_form(self, req: LegacyPurchaseRequest) -> LegacyPaymentForm:
        c = req.customer
        fields: list[tuple[str, object]] = [
            ("Amount", format_amount(req.amount)),
            ("Currency", req.currency),
            ("OrderID", req.order_id),
            ("URL_OK", req.url_ok),
            ("URL_Cancel", req.url_cancel),
            ("URL_Notify", req.url_notify),
            ("CardTokenRequest", "0"),
            ("KeyIndex", self.key_index),
            ("PaymentParametersRequired", "1"),
            ("PaymentMethod", "1"),
            # 客户字段名区分大小写，必须小写
            ("customeremail", c.email),
            ("customerfirstnames", c.first_name),
            ("customerfamilyname", c.last_name),
            ("customerphone", c.phone),
            ("customercountry", c.country),
            ("customercity", c.city),
            ("customerzipcode", c.zip_code),
            ("customeraddress", c.address),
            ("Note", req.note if req.note is not None else f"Order {req.order_id}"),
            ("Source", ""),
            ("CartItems", len(req.cart)),
        ]
        for idx, line in enumerate(req.cart, start=1):
            fields.extend([
                (f"Article_{idx}", line.article),
                (f"Quantity_{idx}", line.quantity),
                (f"Price_{idx}", format_amount(line.price)),
                (f"Amount_{idx}", format_amount(line.amount)),
                (f"Currency_{idx}", line.currency),
            ])
        fields.append(("Delivery", format_amount(req.delivery) if req.delivery else "0"))

        payload = self.build_signed_request(IPC_PURCHASE, fields)
        self._log("legacy_purchase_signed", order_id=req.order_id, amount=format_amount(req.amount))
        return LegacyPaymentForm(endpoint=self.endpoint, fields=payload.to_fields())

    def verify_callback(self, fields: Sequence[tuple[str, str]]) -> bool:
        payload = SignablePayload.from_fields(fields)
        if self.skip_signature_verification:
            self._log("legacy_signature_verification_skipped", order_id=payload.get("OrderID"))
            return True
        return self._verifier.verify(payload)

    # -- server-to-server calls -------------------------------------------

    async def get_transaction_status(self, order_id: str) -> LegacyTransactionResult:
        payload = self.build_signed_request(
            IPC_GET_TXN_STATUS,
            [
                ("KeyIndex", self.key_index),
                ("OrderID", order_id),
                ("OutputFormat", "json"),
            ],
            language="en",
        )
        data = await self._post(payload, order_id=order_id)
        return self._to_result(IPC_GET_TXN_STATUS, order_id, data)

    async def refund(
        self, order_id: str, transaction_ref: str, amount: Decimal, currency: str
    ) -> LegacyTransactionResult:
        payload = self.build_signed_request(
            IPC_REFUND,
            [
                ("KeyIndex", self.key_index),
                ("OrderID", order_id),
                ("IPC_Trnref", transaction_ref),
                ("Amount", format_amount(amount)),
                ("Currency", currency),
                ("OutputFormat", "json"),
            ],
            language="en",
        )
        data = await self._post(payload, order_id=order_id)
        result = self._to_result(IPC_REFUND, order_id, data)
        self._log("legacy_refund_requested", order_id=order_id, success=result.success, status=result.status_code)
        return result

    async def _post(self, payload: SignablePayload, *, order_id: str) -> dict[str, Any]:
        body = urlencode(payload.to_fields())

        async def _call() -> httpx.Response:
            async with self.client() as http:
                resp = await http.post(
                    self.endpoint,
                    content=body,
                    headers={"Content-Type": FORM_CONTENT_TYPE},
                )
            if resp.status_code >= 500:
                raise UpstreamServerError(resp.status_code, resp.text[:200])
            return resp

        try:
            resp = await self._retry(_call)
        except RETRYABLE_ERRORS as exc:
            self._log("legacy_gateway_unavailable", order_id=order_id, error=str(exc))
            raise PaymentRecoverableError(
                "Payment gateway temporarily unavailable",
                provider=self.provider,
                details={"order_id": order_id},
            ) from exc

        if resp.status_code >= 400:
            raise PaymentProviderError(
                f"Gateway rejected request with HTTP {resp.status_code}",
                provider=self.provider,
                provider_code=str(resp.status_code),
                details={"order_id": order_id},
            )
        return self._parse_body(resp)

    @staticmethod
    def _parse_body(resp: httpx.Response) -> dict[str, Any]:
        text = resp.text
        try:
            data = json.loads(text)
            if isinstance(data, dict):
                return data
        except ValueError:
            pass
        return dict(parse_qsl(text, keep_blank_values=True))

    def _to_result(self, method: str, order_id: str, data: dict[str, Any]) -> LegacyTransactionResult:
        status = data.get("Status")
        status = str(status) if status is not None else None
        return LegacyTransactionResult(
            order_id=order_id,
            method=method,
            success=status == LEGACY_STATUS_SUCCESS,
            status_code=status,
            status_message=data.get("StatusMsg"),
            transaction_ref=data.get("IPC_Trnref"),
            raw=data,
        )
