from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Annotated, Any, Dict, Literal, Optional

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, PlainSerializer
from pydantic import ValidationError as SchemaError
from pydantic.alias_generators import to_camel

from ledger.errors import StoreError, ValidationError
from ledger.money import ZERO, to_money


OrderStatus = Literal["Pending", "Fulfilled", "Canceled"]
PaymentTerm = Literal["Full Payment", "Credit"]
PurchasePaymentTerm = Literal["Paid", "Credit"]
PaymentMode = Literal["Cash", "Card", "UPI", "Cheque", "Online Transfer"]

OPENING_BALANCE_PRODUCT = "Opening Balance"

# Cents in memory, plain JSON numbers in the store.
Money = Annotated[
    Decimal,
    BeforeValidator(to_money),
    PlainSerializer(float, return_type=float, when_used="json"),
]
Percent = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]


class _Record(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    @classmethod
    def from_document(cls, data: Dict[str, Any]):
        try:
            return cls.model_validate(data)
        except SchemaError as exc:
            raise StoreError(f"Unreadable {cls.__name__} record {data.get('id')}: {exc}") from exc


class Payment(_Record):
    id: str
    amount: Money = Field(gt=0)
    payment_date: date
    mode: PaymentMode = Field(alias="method")
    reference: Optional[str] = None
    notes: Optional[str] = None


class PurchasePayment(Payment):
    pass


class OrderItem(_Record):
    product_id: str
    product_name: str
    quantity: int = Field(gt=0)
    unit_price: Money = Field(ge=0, alias="price")
    gst_percent: Percent = Field(default=Decimal("0"), ge=0, alias="gst")
    # Unit cost at the time of sale, kept for profit reports.
    cost: Money = Field(default=ZERO, ge=0)

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)


class PurchaseItem(_Record):
    product_id: str
    product_name: str
    quantity: int = Field(gt=0)
    unit_cost: Money = Field(ge=0, alias="cost")
    gst_percent: Percent = Field(default=Decimal("0"), ge=0, alias="gst")

    @property
    def subtotal(self) -> Decimal:
        return to_money(self.unit_cost * self.quantity)


class Order(_Record):
    """A sale invoice. ``total``, ``grand_total``, ``balance_due`` and ``status`` are derived."""

    id: str
    customer_id: str
    customer_name: str = ""
    order_date: date
    status: OrderStatus = "Pending"
    items: list[OrderItem] = []
    total: Money = ZERO
    discount: Money = Field(default=ZERO, ge=0)
    delivery_fees: Money = Field(default=ZERO, ge=0)
    grand_total: Money = ZERO
    payment_term: PaymentTerm = "Full Payment"
    payment_mode: Optional[PaymentMode] = None
    payment_remarks: Optional[str] = None
    due_date: Optional[date] = None
    delivery_date: Optional[date] = None
    delivery_address: Optional[str] = None
    is_gst_invoice: bool = False
    is_opening_balance: bool = False
    payments: list[Payment] = []
    balance_due: Money = ZERO
    # New orders carry zero; a stored value is kept but never enters the balance.
    previous_balance: Money = ZERO

    @property
    def party_id(self) -> str:
        return self.customer_id

    @property
    def document_date(self) -> date:
        return self.order_date

    @property
    def payable_total(self) -> Decimal:
        return self.grand_total


class Purchase(_Record):
    id: str
    supplier_id: str
    supplier_name: str = ""
    purchase_date: date
    status: OrderStatus = "Pending"
    items: list[PurchaseItem] = []
    is_gst_purchase: bool = False
    total: Money = ZERO
    payment_term: PurchasePaymentTerm = "Paid"
    due_date: Optional[date] = None
    payments: list[PurchasePayment] = []
    balance_due: Money = ZERO

    @property
    def party_id(self) -> str:
        return self.supplier_id

    @property
    def document_date(self) -> date:
        return self.purchase_date

    @property
    def payable_total(self) -> Decimal:
        return self.total


class TransactionHistory(_Record):
    total_spent: Money = ZERO
    last_purchase_date: Optional[date] = None


class Customer(_Record):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    transaction_history: TransactionHistory = Field(default_factory=TransactionHistory)


class Supplier(_Record):
    id: str
    name: str
    email: str = ""
    phone: str = ""
    address: str = ""
    transaction_history: TransactionHistory = Field(default_factory=TransactionHistory)


class CustomerLedgerSnapshot(_Record):
    customer_id: str
    invoices: list[Order] = []
    total_spent: Money = ZERO
    total_paid: Money = ZERO
    total_due: Money = ZERO
    last_purchase_date: Optional[date] = None


class SupplierLedgerSnapshot(_Record):
    supplier_id: str
    purchases: list[Purchase] = []
    total_spent: Money = ZERO
    total_paid: Money = ZERO
    total_due: Money = ZERO
    last_purchase_date: Optional[date] = None


class Allocation(_Record):
    invoice_id: str
    amount_allocated: Money
    new_balance_due: Money
    status: OrderStatus


class BulkAllocationResult(_Record):
    """Outcome of one bulk payment. A failed write stops the run; earlier allocations stay committed."""

    party_id: str
    payment_amount: Money
    allocations: list[Allocation] = []
    total_allocated: Money = ZERO
    unallocated_remainder: Money = ZERO
    failed_invoice_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.error is None


class PaymentAlert(_Record):
    order_id: str
    customer_name: str
    due_date: date
    balance_due: Money
    is_overdue: bool
    days: int


def build_record(model, **fields):
    """Construct ``model`` from caller input, reporting bad fields as a ledger ValidationError."""
    try:
        return model(**fields)
    except SchemaError as exc:
        raise ValidationError(f"Invalid {model.__name__}: {exc}") from exc


def parse_records(model, values) -> list:
    records = []
    for value in values or []:
        if isinstance(value, model):
            records.append(value)
            continue
        try:
            records.append(model.model_validate(value))
        except SchemaError as exc:
            raise ValidationError(f"Invalid {model.__name__}: {exc}") from exc
    return records
