"""Registry of QuickBooks resources and what can be done with each."""

from dataclasses import dataclass
from enum import Flag, auto

from ..errors import ValidationError


class Capability(Flag):
    """Operations a resource supports."""

    CREATE = auto()
    READ = auto()
    UPDATE = auto()
    DELETE = auto()
    QUERY = auto()
    VOID = auto()
    PDF = auto()
    SEND = auto()


CRUD = Capability.CREATE | Capability.READ | Capability.UPDATE | Capability.QUERY
LIST = Capability.READ | Capability.QUERY
TRANSACTION = CRUD | Capability.DELETE
DOCUMENT = TRANSACTION | Capability.PDF | Capability.SEND


def pluralize(name: str) -> str:
    """Pluralize a resource name (``Class`` -> ``Classes``, ``Term`` -> ``Terms``)."""
    if name.endswith("s"):
        return name + "es"
    if name.endswith("y"):
        return name[:-1] + "ies"
    return name + "s"


@dataclass(frozen=True)
class EntityType:
    """A QuickBooks resource.

    Attributes:
        name: Resource name as used in query statements and response keys
        capabilities: Supported operations
        path: URL path segment, defaults to the lowercased name
        plural: Plural display name, defaults to the pluralized name
    """

    name: str
    capabilities: Capability
    path: str | None = None
    plural: str | None = None
    requires_sync_token: bool = True

    @property
    def url_path(self) -> str:
        return "/" + (self.path or self.name.lower())

    @property
    def plural_name(self) -> str:
        return self.plural or pluralize(self.name)

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def require(self, capability: Capability) -> None:
        """Raise unless this resource supports the capability."""
        if not self.supports(capability):
            raise ValidationError(
                f"{self.name} does not support {capability.name.lower()}"
            )


REGISTRY: tuple[EntityType, ...] = (
    EntityType("Account", CRUD),
    EntityType("Attachable", TRANSACTION),
    EntityType("Bill", TRANSACTION),
    EntityType("BillPayment", TRANSACTION),
    EntityType("Budget", Capability.QUERY),
    EntityType("Class", CRUD),
    EntityType("CompanyCurrency", LIST, plural="CompanyCurrencies"),
    EntityType("CompanyInfo", LIST | Capability.UPDATE),
    EntityType("CreditMemo", DOCUMENT),
    EntityType("Customer", CRUD),
    EntityType("CustomerType", LIST),
    EntityType("Department", CRUD),
    EntityType("Deposit", TRANSACTION),
    EntityType("Employee", CRUD),
    EntityType("Estimate", DOCUMENT),
    EntityType(
        "ExchangeRate",
        Capability.UPDATE | Capability.QUERY,
        path="exchangerate",
        requires_sync_token=False,
    ),
    EntityType("Invoice", DOCUMENT | Capability.VOID),
    EntityType("Item", CRUD),
    EntityType("JournalCode", TRANSACTION),
    EntityType("JournalEntry", TRANSACTION),
    EntityType("Payment", TRANSACTION),
    EntityType("PaymentMethod", CRUD),
    EntityType("Preferences", LIST | Capability.UPDATE, plural="Preferences"),
    EntityType("Purchase", TRANSACTION),
    EntityType("PurchaseOrder", TRANSACTION | Capability.SEND),
    EntityType("RefundReceipt", TRANSACTION),
    EntityType("SalesReceipt", DOCUMENT),
    EntityType("TaxAgency", CRUD),
    EntityType("TaxCode", LIST | Capability.UPDATE),
    EntityType("TaxRate", LIST | Capability.UPDATE),
    EntityType("TaxService", Capability.CREATE, path="taxservice/taxcode"),
    EntityType("Term", CRUD),
    EntityType("TimeActivity", TRANSACTION),
    EntityType("Transfer", TRANSACTION),
    EntityType("Vendor", CRUD),
    EntityType("VendorCredit", TRANSACTION),
)

REPORTS: tuple[str, ...] = (
    "AccountList",
    "AgedPayableDetail",
    "AgedPayables",
    "AgedReceivableDetail",
    "AgedReceivables",
    "BalanceSheet",
    "CashFlow",
    "ClassSales",
    "CustomerBalance",
    "CustomerBalanceDetail",
    "CustomerIncome",
    "CustomerSales",
    "DepartmentSales",
    "GeneralLedger",
    "InventoryValuationSummary",
    "ItemSales",
    "JournalReport",
    "ProfitAndLoss",
    "ProfitAndLossDetail",
    "TaxSummary",
    "TransactionList",
    "TrialBalance",
    "TrialBalanceFR",
    "VendorBalance",
    "VendorBalanceDetail",
    "VendorExpenses",
)

_BY_KEY: dict[str, EntityType] = {}
for _entity in REGISTRY:
    for _key in (_entity.name, _entity.plural_name, _entity.path or _entity.name):
        _BY_KEY.setdefault(_key.lower(), _entity)

_REPORTS_BY_KEY = {name.lower(): name for name in REPORTS}


def resolve_entity(name: "str | EntityType") -> EntityType:
    """Look up a resource by name, plural or path, ignoring case."""
    if isinstance(name, EntityType):
        return name
    entity = _BY_KEY.get(str(name).strip().strip("/").lower())
    if entity is None:
        raise ValidationError(f"Unknown QuickBooks entity: {name}")
    return entity


def resolve_report(name: str) -> str:
    """Canonical report name, ignoring case."""
    report = _REPORTS_BY_KEY.get(str(name).strip().lower())
    if report is None:
        raise ValidationError(f"Unknown QuickBooks report: {name}")
    return report
