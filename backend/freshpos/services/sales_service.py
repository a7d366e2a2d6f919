"""
Sale transaction engine.

A sale moves BUILDING -> VALIDATING -> COMMITTING -> COMMITTED, or ends in
REJECTED from VALIDATING or COMMITTING. Nothing is written before COMMITTING.

Commit order: lock, re-price, write Sale, deduct via the ledger, write items,
commit once. The Sale row, its items and its 'sale' adjustments share one DB
transaction; a failed deduction leaves no Sale behind.

Money is computed in Decimal at full precision and rounded to cents only when
persisted or rendered. Payment is compared against the rounded total.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from flask import current_app

from ..errors import FreshPOSError, NotFoundError, ValidationError, Violation
from ..expiry import EXPIRED, classify
from ..extensions import db
from ..models import Product, Sale, SaleItem
from ..units import (
    UnitError,
    as_json_number,
    cents_to_money,
    grams_to_kg,
    kg_to_grams,
    line_amount,
    money_to_cents,
    percent_to_bps,
    round_money,
    round_to_cents,
)
from ..validation import MAX_AMOUNT_CENTS, MAX_GRAMS, integer_id
from freshpos.time_utils import business_today, day_bounds
from . import ledger_service
from .catalog_service import warning_window_days
from .concurrency import hold_product_locks, run_with_retry
from .document_service import next_receipt_number

BUILDING = "BUILDING"
VALIDATING = "VALIDATING"
COMMITTING = "COMMITTING"
COMMITTED = "COMMITTED"
REJECTED = "REJECTED"

MAX_DISCOUNT_BPS = 10_000


class SaleError(FreshPOSError):
    """Raised when a sale transaction is driven out of order."""


@dataclass
class CartLine:
    product_id: int
    quantity_grams: int
    # Price the client showed the customer; checked against the catalog
    price_per_kg_cents: int | None = None


@dataclass
class Totals:
    subtotal: Decimal
    total: Decimal
    amount_paid_cents: int | None = None

    @property
    def subtotal_cents(self) -> int:
        return round_to_cents(self.subtotal)

    @property
    def total_cents(self) -> int:
        return round_to_cents(self.total)

    @property
    def discount_amount_cents(self) -> int:
        return self.subtotal_cents - self.total_cents

    @property
    def change_cents(self) -> int | None:
        if self.amount_paid_cents is None:
            return None
        return self.amount_paid_cents - self.total_cents

    def to_dict(self) -> dict:
        change = self.change_cents
        return {
            "subtotal": as_json_number(round_money(self.subtotal)),
            "discount_amount": as_json_number(cents_to_money(self.discount_amount_cents)),
            "total_amount": as_json_number(cents_to_money(self.total_cents)),
            "change_amount": as_json_number(cents_to_money(change)) if change is not None else None,
        }


@dataclass
class ValidationResult:
    ok: bool
    violations: list[Violation] = field(default_factory=list)
    totals: Totals | None = None

    def to_dict(self) -> dict:
        data = {
            "ok": self.ok,
            "violations": [v.to_dict() for v in self.violations],
        }
        if self.totals is not None:
            data.update(self.totals.to_dict())
        return data


def _kg(grams: int) -> float:
    return as_json_number(grams_to_kg(grams))


def _money(cents: int) -> float:
    return as_json_number(cents_to_money(cents))


class SaleTransaction:
    """One checkout: a cart plus its path to a committed Sale."""

    def __init__(self):
        self.state = BUILDING
        self.lines: list[CartLine] = []
        self.violations: list[Violation] = []
        self.sale: Sale | None = None
        self._input_violations: list[Violation] = []

    @classmethod
    def from_items(cls, items) -> "SaleTransaction":
        """
        Build a cart from request JSON: [{product_id, quantity, price_per_kg?}].

        Unreadable lines are remembered and reported by validate() together
        with every other violation.
        """
        tx = cls()
        if items is None:
            items = []
        if not isinstance(items, list):
            tx._input_violations.append(Violation("items", "list", "items must be a list"))
            return tx

        for i, raw in enumerate(items):
            prefix = f"items[{i}]"
            if not isinstance(raw, dict):
                tx._input_violations.append(Violation(prefix, "object", "Each item must be an object"))
                continue
            line_ok = True
            try:
                product_id = integer_id(raw.get("product_id"))
            except ValueError as exc:
                tx._input_violations.append(Violation(f"{prefix}.product_id", "invalid", f"product_id {exc}", raw.get("product_id")))
                line_ok = False
            try:
                quantity_grams = kg_to_grams(raw.get("quantity"))
            except UnitError as exc:
                tx._input_violations.append(Violation(f"{prefix}.quantity", "invalid", f"quantity {exc}", raw.get("quantity")))
                line_ok = False
            price_cents = None
            if raw.get("price_per_kg") is not None:
                try:
                    price_cents = money_to_cents(raw["price_per_kg"])
                except UnitError as exc:
                    tx._input_violations.append(Violation(f"{prefix}.price_per_kg", "invalid", f"price_per_kg {exc}", raw["price_per_kg"]))
                    line_ok = False
            if line_ok:
                tx.lines.append(CartLine(product_id, quantity_grams, price_cents))
            else:
                # Keep positions aligned with the request for error messages
                tx.lines.append(None)  # type: ignore[arg-type]
        return tx

    def add_line(self, product_id: int, quantity_grams: int, price_per_kg_cents: int | None = None) -> CartLine:
        if self.state != BUILDING:
            raise SaleError(f"Cannot add lines to a sale in state {self.state}")
        line = CartLine(product_id, quantity_grams, price_per_kg_cents)
        self.lines.append(line)
        return line

    # -------------------------------------------------------------------------

    def _parse_terms(self, discount, amount_paid) -> tuple[int | None, int | None, list[Violation]]:
        violations: list[Violation] = []
        discount_bps = None
        paid_cents = None

        try:
            discount_bps = percent_to_bps(0 if discount is None else discount)
            if not 0 <= discount_bps <= MAX_DISCOUNT_BPS:
                violations.append(Violation("discount", "range", "discount must be between 0 and 100", discount))
                discount_bps = None
        except UnitError as exc:
            violations.append(Violation("discount", "invalid", f"discount {exc}", discount))

        if amount_paid is None:
            violations.append(Violation("amount_paid", "required", "amount_paid is required"))
        else:
            try:
                paid_cents = money_to_cents(amount_paid)
                if paid_cents < 0:
                    violations.append(Violation("amount_paid", "non_negative", "amount_paid must be >= 0", amount_paid))
                    paid_cents = None
                elif paid_cents > MAX_AMOUNT_CENTS:
                    violations.append(Violation("amount_paid", "max", "amount_paid is unrealistically large", amount_paid))
                    paid_cents = None
            except UnitError as exc:
                violations.append(Violation("amount_paid", "invalid", f"amount_paid {exc}", amount_paid))

        return discount_bps, paid_cents, violations

    def _evaluate(
        self,
        products: dict[int, Product],
        discount_bps: int | None,
        paid_cents: int | None,
        *,
        today: date,
        check_stock: bool,
    ) -> tuple[list[Violation], Totals | None]:
        """
        Apply every business rule to the cart against the given product rows.

        check_stock=True is the advisory check against catalog weight; at
        commit the ledger performs the authoritative one instead.
        """
        violations: list[Violation] = []
        window = warning_window_days()

        if not any(self.lines) and not self._input_violations:
            violations.append(Violation("items", "non_empty", "Cart is empty"))

        subtotal = Decimal(0)
        requested: dict[int, int] = {}
        for i, line in enumerate(self.lines):
            if line is None:
                continue
            prefix = f"items[{i}]"
            if line.quantity_grams <= 0:
                violations.append(Violation(f"{prefix}.quantity", "positive", "Quantity must be greater than 0", _kg(line.quantity_grams)))
            elif line.quantity_grams > MAX_GRAMS:
                violations.append(Violation(f"{prefix}.quantity", "max", "Quantity is unrealistically large", _kg(line.quantity_grams)))

            product = products.get(line.product_id)
            if product is None:
                violations.append(Violation(f"{prefix}.product_id", "exists", "Product not found", line.product_id))
                continue
            if product.is_deleted:
                violations.append(Violation(f"{prefix}.product_id", "product_deleted", f"{product.type} is no longer sold", line.product_id))
            if classify(product.expiry_date, today, window) == EXPIRED:
                violations.append(Violation(f"{prefix}.product_id", "product_expired", f"{product.type} is expired", line.product_id))
            if line.price_per_kg_cents is not None and line.price_per_kg_cents != product.price_cents:
                violations.append(Violation(
                    f"{prefix}.price_per_kg", "price_changed",
                    f"Price of {product.type} is now {cents_to_money(product.price_cents)}",
                    {"submitted": _money(line.price_per_kg_cents), "current": _money(product.price_cents)},
                ))

            if 0 < line.quantity_grams <= MAX_GRAMS:
                requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity_grams
                subtotal += line_amount(line.quantity_grams, product.price_cents)

        if check_stock:
            for product_id, grams in sorted(requested.items()):
                available = products[product_id].weight_grams
                if grams > available:
                    violations.append(Violation(
                        "items", "insufficient_stock",
                        f"Only {grams_to_kg(available)} kg of {products[product_id].type} in stock",
                        {"product_id": product_id, "requested": _kg(grams), "available": _kg(available)},
                    ))

        if discount_bps is None:
            return violations, None

        total = subtotal * (Decimal(MAX_DISCOUNT_BPS - discount_bps) / MAX_DISCOUNT_BPS)
        totals = Totals(subtotal=subtotal, total=total, amount_paid_cents=paid_cents)

        if total < 0:
            violations.append(Violation("total", "non_negative", "Total cannot be negative", _money(totals.total_cents)))
        elif subtotal > 0 and totals.total_cents <= 0:
            violations.append(Violation("total", "positive", "Total must be greater than 0 when items are sold", _money(totals.total_cents)))

        if paid_cents is not None and paid_cents < totals.total_cents:
            violations.append(Violation(
                "amount_paid", "sufficient_payment",
                "Amount paid is less than the total",
                {"amount_paid": _money(paid_cents), "total_amount": _money(totals.total_cents)},
            ))

        return violations, totals

    def _product_ids(self) -> list[int]:
        return sorted({line.product_id for line in self.lines if line is not None})

    def validate(
        self,
        discount=0,
        amount_paid=None,
        *,
        today: date | None = None,
        check_stock: bool = True,
    ) -> ValidationResult:
        """
        Check the cart against the catalog as currently stored. Writes nothing.

        Every violation is reported, not just the first. Any violation moves
        the transaction to REJECTED.
        """
        if self.state not in (BUILDING, VALIDATING):
            raise SaleError(f"Cannot validate a sale in state {self.state}")
        self.state = VALIDATING

        discount_bps, paid_cents, violations = self._parse_terms(discount, amount_paid)
        violations = list(self._input_violations) + violations

        ids = self._product_ids()
        products = {p.id: p for p in db.session.query(Product).filter(Product.id.in_(ids)).all()} if ids else {}

        rule_violations, totals = self._evaluate(
            products, discount_bps, paid_cents, today=today or business_today(), check_stock=check_stock
        )
        violations.extend(rule_violations)

        self.violations = violations
        if violations:
            self.state = REJECTED
        return ValidationResult(ok=not violations, violations=violations, totals=totals)

    def commit(self, discount=0, amount_paid=None, *, today: date | None = None) -> Sale:
        """
        Validate, then atomically deduct stock and record the sale.

        Raises ValidationError (every violation), InsufficientStock (current
        balances, when a concurrent sale took the stock after validation) or
        ConflictError (lock contention). On any failure nothing is written
        and the transaction is REJECTED.
        """
        today = today or business_today()
        # Stock is checked by the ledger under the product locks
        result = self.validate(discount, amount_paid, today=today, check_stock=False)
        if not result.ok:
            raise ValidationError("Sale rejected", result.violations)

        self.state = COMMITTING
        discount_bps, paid_cents, _ = self._parse_terms(discount, amount_paid)
        lines = [line for line in self.lines if line is not None]
        product_ids = self._product_ids()

        try:
            receipt_no = next_receipt_number()

            def _op():
                with hold_product_locks(product_ids):
                    products = ledger_service.load_locked_products(product_ids)

                    # Re-price under the locks; stock is left to the ledger
                    violations, totals = self._evaluate(
                        products, discount_bps, paid_cents, today=today, check_stock=False
                    )
                    if violations:
                        raise ValidationError("Sale rejected", violations)

                    sale = Sale(
                        receipt_no=receipt_no,
                        subtotal_cents=totals.subtotal_cents,
                        discount_bps=discount_bps,
                        discount_amount_cents=totals.discount_amount_cents,
                        total_amount_cents=totals.total_cents,
                        amount_paid_cents=paid_cents,
                        change_amount_cents=totals.change_cents,
                    )
                    db.session.add(sale)
                    db.session.flush()

                    batch = ledger_service.reserve_and_commit_batch(
                        [{"product_id": line.product_id, "quantity_grams": line.quantity_grams} for line in lines],
                        sale_id=sale.id,
                        notes=f"Sale {receipt_no}",
                        commit=False,
                    )

                    for line, adj in zip(lines, batch.adjustments):
                        price = products[line.product_id].price_cents
                        db.session.add(SaleItem(
                            sale_id=sale.id,
                            product_id=line.product_id,
                            quantity_grams=line.quantity_grams,
                            price_per_kg_cents=price,
                            line_total_cents=round_to_cents(line_amount(line.quantity_grams, price)),
                            adjustment_id=adj.id,
                        ))

                    db.session.commit()
                    return sale

            sale = run_with_retry(_op)
        except FreshPOSError as exc:
            self.state = REJECTED
            current_app.logger.warning("Sale rejected during commit: %s %s", exc.message, exc.details)
            raise

        self.state = COMMITTED
        self.sale = sale
        current_app.logger.info(
            "Sale committed receipt_no=%s total_cents=%s lines=%s",
            sale.receipt_no, sale.total_amount_cents, len(lines),
        )
        return sale


# =============================================================================
# Request-level entry points
# =============================================================================

def validate_sale(items, discount=0, amount_paid=None) -> ValidationResult:
    return SaleTransaction.from_items(items).validate(discount, amount_paid)


def complete_sale(items, discount=0, amount_paid=None) -> Sale:
    return SaleTransaction.from_items(items).commit(discount, amount_paid)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError("Sale not found", {"sale_id": sale_id})
    return sale


def list_sales(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    receipt_no: str | None = None,
    limit: int = 500,
) -> list[Sale]:
    q = db.session.query(Sale)
    if start_date is not None:
        q = q.filter(Sale.sale_date >= day_bounds(start_date, start_date)[0])
    if end_date is not None:
        q = q.filter(Sale.sale_date < day_bounds(end_date, end_date)[1])
    if receipt_no:
        q = q.filter(Sale.receipt_no.ilike(f"%{receipt_no.strip()}%"))
    return q.order_by(Sale.sale_date.desc(), Sale.id.desc()).limit(limit).all()
