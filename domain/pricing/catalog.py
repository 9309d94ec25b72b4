"""
价目表 - 服务端唯一可信的价格来源

客户端提交的价格只用于比对，绝不参与金额计算。
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional


class CatalogItemKind(str, Enum):
    DOCUMENT = "document"
    PACKAGE = "package"


@dataclass(frozen=True)
class PriceCatalogEntry:
    id: str
    kind: CatalogItemKind
    name: str
    price: Decimal
    currency: str = "EUR"
    # 套餐包含的文档 ID（仅 package 有值）
    documents: tuple[str, ...] = field(default_factory=tuple)


DEFAULT_VAT_RATE = Decimal("0.20")

DEFAULT_ENTRIES: tuple[PriceCatalogEntry, ...] = (
    PriceCatalogEntry("speciment_test", CatalogItemKind.DOCUMENT, "Specimen (test)", Decimal("10")),
    PriceCatalogEntry("speciment", CatalogItemKind.DOCUMENT, "Specimen signature", Decimal("20")),
    PriceCatalogEntry("nda", CatalogItemKind.DOCUMENT, "Non-disclosure agreement", Decimal("15")),
    PriceCatalogEntry("employment_contract", CatalogItemKind.DOCUMENT, "Employment contract", Decimal("25")),
    PriceCatalogEntry("personal_data_form", CatalogItemKind.DOCUMENT, "Personal data consent form", Decimal("10")),
    PriceCatalogEntry(
        "employment_package",
        CatalogItemKind.PACKAGE,
        "Employment package",
        Decimal("100"),
        documents=("employment_contract", "nda", "personal_data_form"),
    ),
    PriceCatalogEntry(
        "company_starter_package",
        CatalogItemKind.PACKAGE,
        "Company starter package",
        Decimal("100"),
        documents=("speciment", "nda"),
    ),
    PriceCatalogEntry(
        "test_production_package",
        CatalogItemKind.PACKAGE,
        "Test production package",
        Decimal("1"),
        documents=("speciment_test",),
    ),
)


class PriceCatalog:
    """按 (id, kind) 查询价格的只读价目表"""

    def __init__(
        self,
        entries: Iterable[PriceCatalogEntry] = DEFAULT_ENTRIES,
        *,
        vat_rate: Decimal = DEFAULT_VAT_RATE,
        currency: str = "EUR",
    ) -> None:
        self._entries = {(e.id, e.kind): e for e in entries}
        self.vat_rate = vat_rate
        self.currency = currency

    def resolve(self, item_id: str, kind: str) -> Optional[PriceCatalogEntry]:
        try:
            kind_enum = CatalogItemKind(kind)
        except ValueError:
            return None
        return self._entries.get((item_id, kind_enum))

    def list_documents(self) -> list[PriceCatalogEntry]:
        return [e for e in self._entries.values() if e.kind is CatalogItemKind.DOCUMENT]

    def list_packages(self) -> list[PriceCatalogEntry]:
        return [e for e in self._entries.values() if e.kind is CatalogItemKind.PACKAGE]

    def package_documents(self, package_id: str) -> Optional[tuple[str, ...]]:
        entry = self._entries.get((package_id, CatalogItemKind.PACKAGE))
        return entry.documents if entry else None
