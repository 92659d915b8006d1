"""
Domain Models

Pydantic models for the documents held in the store and the values that
flow through the import pipeline. Documents keep the store's camelCase keys
through aliases; Python code uses snake_case attributes.

Persistent documents:
- Product, Sale/SaleItem, Return/ReturnItem, Expense, OtherIncome
- SkuMapping, ImportedFileRecord, StoreSettings, ActivityLog

Derived values:
- RawExtractedRow, AggregatedItem, FinancialSummary, Notice
"""

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# COLLECTIONS
# =============================================================================

class Collections:
    """Names of the persistent collections"""
    PRODUCTS = "products"
    SALES = "sales"
    RETURNS = "returns"
    EXPENSES = "expenses"
    OTHER_INCOMES = "otherIncomes"
    SKU_MAPPINGS = "skuMappings"
    IMPORTED_FILES = "importedFiles"
    STOCK_OPNAME_LOGS = "stockOpnameLogs"
    ACTIVITY_LOGS = "activityLogs"
    SETTINGS = "settings"
    FLASH_SALES = "flashSales"


SINGLETON_ID = "main"
SYSTEM_USER = "sistem"


class DocumentModel(BaseModel):
    """Base class for store documents"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = ""

    def to_document(self) -> Dict[str, Any]:
        """Serialize to a store document (id is the document key, not a field)"""
        return self.model_dump(by_alias=True, exclude={"id"}, exclude_none=True)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]):
        """Build a model from a store document"""
        return cls.model_validate(doc)


# =============================================================================
# CATALOG
# =============================================================================

class Product(DocumentModel):
    """Catalog product"""
    name: str
    cost_price: float = Field(default=0, alias="costPrice")
    selling_price: float = Field(default=0, alias="sellingPrice")
    stock: int = 0
    category: str = "Lainnya"
    subcategory: Optional[str] = None


class ProductSnapshot(BaseModel):
    """Product identity captured on a sale line"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    category: str = ""
    subcategory: Optional[str] = None
    cost_price: float = Field(default=0, alias="costPrice")

    @classmethod
    def of(cls, product: Product) -> "ProductSnapshot":
        return cls(
            id=product.id,
            name=product.name,
            category=product.category,
            subcategory=product.subcategory,
            cost_price=product.cost_price,
        )


DELETED_PRODUCT = {"id": "unknown", "name": "Produk Dihapus", "category": "Lainnya", "costPrice": 0}


# =============================================================================
# TRANSACTIONS
# =============================================================================

class SaleItem(BaseModel):
    """
    Sale line.

    cost_price_at_sale is fixed when the sale is created and never
    recomputed. None only for legacy documents written without it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product: ProductSnapshot
    quantity: int
    price: float
    cost_price_at_sale: Optional[float] = Field(default=None, alias="costPriceAtSale")

    @field_validator("product", mode="before")
    @classmethod
    def deleted_product(cls, v):
        return v if v else dict(DELETED_PRODUCT)


class Sale(DocumentModel):
    """Completed sale"""
    items: List[SaleItem] = Field(default_factory=list)
    subtotal: float = 0
    discount: float = 0  # percentage
    final_total: float = Field(default=0, alias="finalTotal")
    date: datetime

    @property
    def discount_amount(self) -> float:
        return self.subtotal * self.discount / 100


class ReturnedProduct(BaseModel):
    """Product identity captured on a return line"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str
    name: str
    subcategory: Optional[str] = None


class ReturnItem(BaseModel):
    """Return line"""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    product: ReturnedProduct
    quantity: int
    price_at_sale: float = Field(default=0, alias="priceAtSale")
    cost_price_at_sale: Optional[float] = Field(default=None, alias="costPriceAtSale")

    @field_validator("product", mode="before")
    @classmethod
    def deleted_product(cls, v):
        return v if v else {"id": DELETED_PRODUCT["id"], "name": DELETED_PRODUCT["name"]}


class Return(DocumentModel):
    """Customer return against a sale"""
    sale_id: str = Field(alias="saleId")
    items: List[ReturnItem] = Field(default_factory=list)
    reason: str = ""
    date: datetime
    total_refund: float = Field(default=0, alias="totalRefund")


class Expense(DocumentModel):
    """Operational expense"""
    name: str
    amount: float
    category: str
    date: datetime
    subcategory: Optional[str] = None


class OtherIncome(DocumentModel):
    """Non-sales income"""
    name: str
    amount: float
    date: datetime
    notes: Optional[str] = None


# =============================================================================
# IMPORT BOOKKEEPING
# =============================================================================

class SkuMapping(DocumentModel):
    """Saved resolution of an import SKU to an existing product"""
    import_sku: str = Field(alias="importSku")
    mapped_product_id: str = Field(alias="mappedProductId")
    mapped_product_name: str = Field(alias="mappedProductName")


class ImportedFileRecord(DocumentModel):
    """Marker that the operational cost of a source file has been posted"""
    name: str
    imported_at: datetime = Field(alias="importedAt")


class StoreSettings(DocumentModel):
    """Singleton store settings (settings/main)"""
    store_name: str = Field(default="Toko Cepat", alias="storeName")
    default_discount: float = Field(default=0, alias="defaultDiscount")
    sync_cost_price: bool = Field(default=True, alias="syncCostPrice")


class ActivityLog(DocumentModel):
    """Audit trail entry"""
    date: datetime
    user: str = SYSTEM_USER
    description: str


# =============================================================================
# PIPELINE VALUES
# =============================================================================

class RawExtractedRow(BaseModel):
    """One order line as produced by an extraction collaborator"""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    order_id: str = Field(default="", validation_alias=AliasChoices("order_id", "orderId"))
    sku: str = ""
    product_name: str = Field(
        default="", validation_alias=AliasChoices("product_name", "productName", "name")
    )
    quantity: int = Field(ge=0)
    unit_price: float = Field(
        default=0, ge=0, validation_alias=AliasChoices("unit_price", "unitPrice", "sellingPrice", "price")
    )

    @field_validator("order_id", "sku", "product_name", mode="before")
    @classmethod
    def clean_text(cls, v):
        if v is None:
            return ""
        return str(v).strip()


class AggregatedItem(BaseModel):
    """All raw rows sharing one key, collapsed"""

    model_config = ConfigDict(frozen=True)

    key: str
    display_name: str
    total_quantity: int
    average_unit_price: float
    is_new: bool = False

    @property
    def total_value(self) -> float:
        return self.average_unit_price * self.total_quantity


class FinancialSummary(BaseModel):
    """Financial figures for one closed date interval"""
    start: datetime
    end: datetime
    net_revenue: float = 0
    total_cogs: float = 0
    total_expenses: float = 0
    total_returns: float = 0
    total_other_income: float = 0
    gross_profit: float = 0
    net_profit: float = 0
    sales_count: int = 0


class Notice(BaseModel):
    """Toast-style notification surfaced to the operator"""
    level: Literal["info", "success", "warning", "error"] = "info"
    title: str
    message: str
