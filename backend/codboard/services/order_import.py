"""Order import rules: header matching, row validation and the import report.

WHAT:
    Pure functions that turn parsed CSV records into validated `ImportRow`
    values, plus the dataclasses that accumulate the outcome of an import.
    Nothing in this module touches the database.

WHY:
    Validation must finish over the whole file before any write happens, so
    the quota gate can be checked against the exact number of rows that
    would be inserted. Keeping it pure also lets the rules be unit tested
    without a session.

FLOW:
    headers -> validate_headers -> HeaderMatch (column index -> field)
    rows    -> validate_import_rows -> [ImportRow], [RowValidationError]
    writer  -> ImportReport.record_success / record_failure -> to_dict()

REFERENCES:
    - codboard/services/orders_service.py (pipeline driver)
    - codboard/utils/csv_rows.py (record parser)
"""

import re
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Sequence, Tuple

from codboard.utils.csv_rows import render_csv


# =============================================================================
# COLUMN SCHEMA
# =============================================================================

@dataclass(frozen=True)
class ImportColumn:
    key: str
    label: str
    label_ar: str
    required: bool

    @property
    def display(self) -> str:
        return f"{self.label} ({self.label_ar})"


IMPORT_COLUMNS: Tuple[ImportColumn, ...] = (
    ImportColumn("order_number", "Order Number", "رقم الطلب", False),
    ImportColumn("date", "Date", "التاريخ", False),
    ImportColumn("customer_name", "Customer Name", "اسم العميل", True),
    ImportColumn("phone", "Phone", "رقم الهاتف", True),
    ImportColumn("city", "City", "المدينة", False),
    ImportColumn("address", "Address", "العنوان", False),
    ImportColumn("sku", "SKU", "رمز المنتج", True),
    ImportColumn("product", "Product", "المنتج", False),
    ImportColumn("quantity", "Quantity", "الكمية", True),
    ImportColumn("price", "Price", "السعر", True),
    ImportColumn("status", "Status", "الحالة", False),
    ImportColumn("notes", "Notes", "ملاحظات", False),
)

_COLUMNS_BY_KEY = {column.key: column for column in IMPORT_COLUMNS}

# Normalized header -> column key. Both the underscored and the squashed
# spelling are listed because sellers type headers either way.
HEADER_ALIASES: Dict[str, str] = {
    "order_number": "order_number",
    "ordernumber": "order_number",
    "order_no": "order_number",
    "رقم_الطلب": "order_number",
    "رقمالطلب": "order_number",

    "date": "date",
    "order_date": "date",
    "التاريخ": "date",
    "تاريخ": "date",

    "customer_name": "customer_name",
    "customername": "customer_name",
    "customer": "customer_name",
    "name": "customer_name",
    "اسم_العميل": "customer_name",
    "اسمالعميل": "customer_name",
    "العميل": "customer_name",
    "الاسم": "customer_name",

    "phone": "phone",
    "phone_number": "phone",
    "phonenumber": "phone",
    "mobile": "phone",
    "رقم_الهاتف": "phone",
    "رقمالهاتف": "phone",
    "الهاتف": "phone",
    "الموبايل": "phone",
    "الجوال": "phone",

    "city": "city",
    "governorate": "city",
    "المدينة": "city",
    "المحافظة": "city",

    "address": "address",
    "city_address": "address",
    "cityaddress": "address",
    "العنوان": "address",
    "المدينةالعنوان": "address",

    "sku": "sku",
    "product_code": "sku",
    "productcode": "sku",
    "barcode": "sku",
    "رمز_المنتج": "sku",
    "رمزالمنتج": "sku",
    "كود_المنتج": "sku",
    "كودالمنتج": "sku",
    "الباركود": "sku",

    "product": "product",
    "product_name": "product",
    "productname": "product",
    "المنتج": "product",
    "اسم_المنتج": "product",
    "اسمالمنتج": "product",

    "quantity": "quantity",
    "qty": "quantity",
    "الكمية": "quantity",
    "كمية": "quantity",

    "price": "price",
    "unit_price": "price",
    "unitprice": "price",
    "السعر": "price",
    "سعر": "price",

    "status": "status",
    "الحالة": "status",
    "حالة": "status",

    "notes": "notes",
    "note": "notes",
    "ملاحظات": "notes",
    "ملاحظة": "notes",
}

# Accepted status spellings -> status key
STATUS_ALIASES: Dict[str, str] = {
    "new": "new",
    "جديد": "new",
    "confirmed": "confirmed",
    "مؤكد": "confirmed",
    "processing": "processing",
    "قيد التجهيز": "processing",
    "shipped": "shipped",
    "تم الشحن": "shipped",
    "delivered": "delivered",
    "تم التسليم": "delivered",
    "returned": "returned",
    "مرتجع": "returned",
    "cancelled": "cancelled",
    "canceled": "cancelled",
    "ملغي": "cancelled",
}

ERROR_INVALID_FIELD = "invalid_field"
ERROR_SKU_NOT_FOUND = "sku_not_found"
ERROR_INSERT_FAILED = "insert_failed"

_WHITESPACE = re.compile(r"\s+")
# Keep word characters and the Arabic block, drop everything else
_NON_HEADER_CHARS = re.compile(r"[^\w\u0600-\u06FF]")
_PHONE_SEPARATORS = re.compile(r"[\s\-()]")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})-(\d{1,2})$")
_DAY_FIRST_DATE = re.compile(r"^(\d{1,2})([/.\-])(\d{1,2})\2(\d{4})$")
_WHOLE_NUMBER = re.compile(r"^(\d+)(?:\.0+)?$")
_PLAIN_DECIMAL = re.compile(r"^\d+(?:\.\d+)?$")

# Integer column range for quantity, Numeric(18,4) headroom for unit price
MAX_QUANTITY = 2_147_483_647
MAX_PRICE = Decimal("10000000000")


# =============================================================================
# RESULT TYPES
# =============================================================================

@dataclass
class RowValidationError:
    """One problem with one row. Collected into the report, never raised."""
    row_number: int
    column: str
    message: str
    value: Optional[str] = None
    code: str = ERROR_INVALID_FIELD

    def to_dict(self) -> dict:
        return {
            "row_number": self.row_number,
            "column": self.column,
            "message": self.message,
            "value": self.value,
            "code": self.code,
        }


@dataclass
class ImportRow:
    """A row that passed field validation. Lives for one import call."""
    row_number: int
    customer_name: str
    sku: str
    quantity: int
    price: Decimal
    phone: Optional[str] = None
    order_number: Optional[str] = None
    order_date: Optional[date] = None
    city: Optional[str] = None
    address: Optional[str] = None
    product: Optional[str] = None
    status: Optional[str] = None
    notes: Optional[str] = None

    @property
    def sku_key(self) -> str:
        return normalize_sku(self.sku)

    @property
    def customer_address(self) -> Optional[str]:
        parts = [part for part in (self.city, self.address) if part]
        return " - ".join(parts) if parts else None


@dataclass
class HeaderMatch:
    """Outcome of header validation."""
    column_mapping: Dict[int, str]
    missing_required: List[str]
    missing_optional: List[str]

    @property
    def is_valid(self) -> bool:
        return not self.missing_required

    @property
    def found_columns(self) -> List[str]:
        return list(self.column_mapping.values())


@dataclass
class ImportReport:
    """Accumulator folded over the rows of one import.

    Every data row ends up in exactly one of the two counters, so
    `success + failed == total_rows` once header validation has passed.
    """
    total_rows: int = 0
    success: int = 0
    failed: int = 0
    header_errors: List[str] = field(default_factory=list)
    products_created: int = 0
    order_ids: List[str] = field(default_factory=list)
    _errors: "OrderedDict[int, List[RowValidationError]]" = field(default_factory=OrderedDict)

    def record_success(self, order_id) -> None:
        self.success += 1
        self.order_ids.append(str(order_id))

    def record_failure(self, row_number: int, errors: Sequence[RowValidationError]) -> None:
        self.failed += 1
        self._errors.setdefault(row_number, []).extend(errors)

    @property
    def errors(self) -> List[dict]:
        return [
            {"row_number": row_number, "errors": [error.to_dict() for error in self._errors[row_number]]}
            for row_number in sorted(self._errors)
        ]

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "failed": self.failed,
            "total_rows": self.total_rows,
            "errors": self.errors,
            "header_errors": list(self.header_errors),
            "products_created": self.products_created,
        }


# =============================================================================
# HEADERS
# =============================================================================

def normalize_header(header: str) -> str:
    """Lower-case, underscore whitespace, strip punctuation.

    >>> normalize_header("  Customer Name ")
    'customer_name'
    >>> normalize_header("City/Address")
    'cityaddress'
    """
    value = _WHITESPACE.sub("_", (header or "").strip().lower())
    return _NON_HEADER_CHARS.sub("", value)


def match_column(header: str) -> Optional[str]:
    return HEADER_ALIASES.get(normalize_header(header))


def validate_headers(headers: Sequence[str]) -> HeaderMatch:
    """Map header positions to column keys and list what is missing.

    When a column appears twice the first occurrence wins.
    """
    mapping: Dict[int, str] = {}
    seen = set()
    for index, header in enumerate(headers):
        key = match_column(header)
        if key and key not in seen:
            mapping[index] = key
            seen.add(key)

    missing_required = [c.display for c in IMPORT_COLUMNS if c.required and c.key not in seen]
    missing_optional = [c.display for c in IMPORT_COLUMNS if not c.required and c.key not in seen]
    return HeaderMatch(column_mapping=mapping, missing_required=missing_required, missing_optional=missing_optional)


# =============================================================================
# FIELD PARSERS
# =============================================================================

def normalize_sku(sku: str) -> str:
    return (sku or "").strip().lower()


def _strip_separators(raw: str) -> str:
    return raw.strip().replace(",", "").replace("،", "")


def parse_quantity(raw: str) -> Optional[int]:
    """Positive whole number up to MAX_QUANTITY or None.

    Only plain digits are accepted ("2.0" too, "2.5" and "1e3" are not).
    """
    match = _WHOLE_NUMBER.match(_strip_separators(raw))
    if not match:
        return None
    digits = match.group(1).lstrip("0")
    if not digits or len(digits) > len(str(MAX_QUANTITY)):
        return None
    value = int(digits)
    if value > MAX_QUANTITY:
        return None
    return value


def parse_price(raw: str) -> Optional[Decimal]:
    """Non-negative plain decimal below MAX_PRICE, thousands separators removed."""
    cleaned = _strip_separators(raw)
    if not _PLAIN_DECIMAL.match(cleaned):
        return None
    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None
    if value >= MAX_PRICE:
        return None
    return value


def parse_import_date(raw: str) -> Optional[date]:
    """Accept YYYY-MM-DD or day-first D/M/YYYY, D-M-YYYY, D.M.YYYY."""
    match = _ISO_DATE.match(raw)
    if match:
        year, month, day = (int(part) for part in match.groups())
    else:
        match = _DAY_FIRST_DATE.match(raw)
        if not match:
            return None
        day, month, year = int(match.group(1)), int(match.group(3)), int(match.group(4))
    try:
        return date(year, month, day)
    except ValueError:
        return None


def normalize_status(raw: str) -> Optional[str]:
    return STATUS_ALIASES.get(_WHITESPACE.sub(" ", raw.strip().lower()))


def clean_phone(raw: str) -> str:
    return _PHONE_SEPARATORS.sub("", raw)


# =============================================================================
# ROWS
# =============================================================================

def validate_row(
    row_number: int,
    values: Sequence[str],
    column_mapping: Dict[int, str],
) -> Tuple[Optional[ImportRow], List[RowValidationError]]:
    """Validate one data row.

    Returns `(row, [])` when valid, `(None, errors)` otherwise. Never raises;
    every failing field contributes its own error.
    """
    errors: List[RowValidationError] = []
    data: Dict[str, object] = {}

    def fail(key: str, message: str, value: Optional[str] = None) -> None:
        errors.append(RowValidationError(row_number, _COLUMNS_BY_KEY[key].label, message, value or None))

    raw = {key: (values[index] if index < len(values) else "").strip() for index, key in column_mapping.items()}

    name = raw.get("customer_name", "")
    if not name:
        fail("customer_name", "Customer name is required")
    elif len(name) < 2:
        fail("customer_name", "Customer name is too short", name)
    else:
        data["customer_name"] = name

    phone = raw.get("phone", "")
    if phone:
        cleaned = clean_phone(phone)
        if sum(ch.isdigit() for ch in cleaned) < 8:
            fail("phone", "Phone number must contain at least 8 digits", phone)
        else:
            data["phone"] = cleaned

    sku = raw.get("sku", "")
    if not sku:
        fail("sku", "SKU is required")
    else:
        data["sku"] = sku

    quantity = raw.get("quantity", "")
    if not quantity:
        fail("quantity", "Quantity is required")
    else:
        parsed_quantity = parse_quantity(quantity)
        if parsed_quantity is None:
            fail("quantity", "Quantity must be a whole number greater than 0", quantity)
        else:
            data["quantity"] = parsed_quantity

    price = raw.get("price", "")
    if not price:
        fail("price", "Price is required")
    else:
        parsed_price = parse_price(price)
        if parsed_price is None:
            fail("price", "Price must be a number greater than or equal to 0", price)
        else:
            data["price"] = parsed_price

    order_date = raw.get("date", "")
    if order_date:
        parsed_date = parse_import_date(order_date)
        if parsed_date is None:
            fail("date", "Unrecognized date format, use YYYY-MM-DD or DD/MM/YYYY", order_date)
        else:
            data["order_date"] = parsed_date

    status = raw.get("status", "")
    if status:
        status_key = normalize_status(status)
        if status_key is None:
            fail("status", f'Unknown status: "{status}"', status)
        else:
            data["status"] = status_key

    for key in ("order_number", "city", "address", "product", "notes"):
        if raw.get(key):
            data[key] = raw[key]

    if errors:
        return None, errors
    return ImportRow(row_number=row_number, **data), []


def validate_import_rows(
    rows: Sequence[Sequence[str]],
    column_mapping: Dict[int, str],
) -> Tuple[List[ImportRow], Dict[int, List[RowValidationError]]]:
    """Validate every data row. Row numbers are 1-based and count the header."""
    valid: List[ImportRow] = []
    invalid: Dict[int, List[RowValidationError]] = OrderedDict()
    for index, values in enumerate(rows):
        row_number = index + 2
        row, errors = validate_row(row_number, values, column_mapping)
        if row is not None:
            valid.append(row)
        else:
            invalid[row_number] = errors
    return valid, invalid


# =============================================================================
# TEMPLATE
# =============================================================================

_TEMPLATE_EXAMPLES = {
    "en": [
        ["", "2025-01-15", "Ahmed Mohamed", "01012345678", "Cairo", "Nasr City, Street 10", "PRD-001", "Wireless Earbuds", "2", "350", "new", "Call before delivery"],
        ["", "2025-01-15", "Sara Ali", "01198765432", "Giza", "Dokki, Tahrir St", "PRD-002", "Phone Case", "1", "120", "confirmed", ""],
        ["", "16/01/2025", "Omar Hassan", "01555555555", "Alexandria", "Smouha", "PRD-001", "Wireless Earbuds", "1", "350", "", ""],
    ],
    "ar": [
        ["", "2025-01-15", "أحمد محمد", "01012345678", "القاهرة", "مدينة نصر، شارع 10", "PRD-001", "سماعات لاسلكية", "2", "350", "جديد", "الاتصال قبل التوصيل"],
        ["", "2025-01-15", "سارة علي", "01198765432", "الجيزة", "الدقي، شارع التحرير", "PRD-002", "جراب موبايل", "1", "120", "مؤكد", ""],
        ["", "16/01/2025", "عمر حسن", "01555555555", "الإسكندرية", "سموحة", "PRD-001", "سماعات لاسلكية", "1", "350", "", ""],
    ],
}


def generate_order_template(language: str = "en") -> str:
    """CSV template with every import column and three example rows."""
    language = "ar" if language == "ar" else "en"
    headers = [column.label_ar if language == "ar" else column.label for column in IMPORT_COLUMNS]
    return render_csv(headers, _TEMPLATE_EXAMPLES[language])
