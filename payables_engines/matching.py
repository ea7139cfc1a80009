"""
payables_engines.matching -- Three-way match of invoice, purchase order and goods receipt.

Responsibility:
    Compare an invoice's billed lines with the ordered lines of its purchase
    order and the received quantities of its goods receipt, producing a
    0-100 score, a discrepancy report ordered by monetary impact, and the
    policy recommendation for the match alone (no risk verdict).

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Imports kernel domain DTOs and exceptions only.

Invariants enforced:
    - Determinism: identical inputs and policy produce an identical
      MatchResult, including its fingerprint; no clock, no randomness.
    - Score bounds: the score is clamped to [0, 100] and quantized to
      ``policy.score_precision``.
    - Currency safety: amounts in different currencies are never compared;
      the result is score 0 with a CURRENCY_MISMATCH finding.
    - Missing PO: score 0 with a NO_PO_REFERENCE finding.
    - Missing goods receipt: a NO_GOODS_RECEIPT finding, so nothing billed
      against an unreceived order is recommended for approval.

Scoring:
    score = 100 - sum(penalties) where, per finding,
      quantity over / short, line not on PO:
          quantity_weight * billed line value / invoice total * 100
      price variance:
          price_weight * overcharge / invoice total * 100
      PO line not invoiced:
          missing_line_weight * PO line value / PO total * 100
      partial shipment (billed == received < ordered):
          partial_shipment_weight * billed line value / invoice total * 100
      no goods receipt:
          missing_receipt_weight * 100

Failure modes:
    - MatchValidationError before any computation on negative quantities
      or prices, blank descriptions, duplicate lines on one document, an
      invoice without lines, or a receipt for a different PO.

Audit relevance:
    Every invocation is traced via ``@traced_engine``; the result's
    fingerprint lets a reviewer confirm a displayed score was produced from
    the current documents.

Usage:
    from payables_engines.matching import ThreeWayMatchEngine

    result = ThreeWayMatchEngine().match(invoice, purchase_order, goods_receipt)
    result.score, result.recommendation, result.discrepancies
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, replace
from decimal import ROUND_HALF_UP, Decimal

from payables_engines.match_types import (
    KIND_ORDER,
    Discrepancy,
    DiscrepancyKind,
    MatchResult,
    MissingLineScope,
    Recommendation,
)
from payables_engines.recommendation import RecommendationThresholds, decide
from payables_engines.tracer import traced_engine
from payables_kernel.domain.documents import (
    GoodsReceipt,
    GoodsReceiptLine,
    Invoice,
    PurchaseOrder,
    ReceiptLineStatus,
)
from payables_kernel.exceptions import MatchValidationError
from payables_kernel.logging_config import get_logger
from payables_kernel.utils.hashing import hash_payload

logger = get_logger("engines.matching")

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")
_STRIP_CHARS = " \t.,;:-_"


@dataclass(frozen=True)
class MatchPolicy:
    """Tolerances and penalty weights for the three-way match.

    Attributes:
        price_tolerance_percent: Unit-price variance (in percent of the PO
            price) tolerated without a finding.  0 flags any difference.
        quantity_weight: Penalty weight for quantity findings.
        price_weight: Penalty weight for overcharges.
        missing_line_weight: Penalty weight for PO lines not invoiced.
        partial_shipment_weight: Penalty weight for partial-shipment notes.
        missing_receipt_weight: Penalty weight when no goods were received.
        score_precision: Quantum the score is rounded to.
    """

    price_tolerance_percent: Decimal = Decimal("0")
    quantity_weight: Decimal = Decimal("0.7")
    price_weight: Decimal = Decimal("6")
    missing_line_weight: Decimal = Decimal("0.1")
    partial_shipment_weight: Decimal = Decimal("0")
    missing_receipt_weight: Decimal = Decimal("0")
    score_precision: Decimal = Decimal("0.01")

    def __post_init__(self) -> None:
        for name in (
            "price_tolerance_percent",
            "quantity_weight",
            "price_weight",
            "missing_line_weight",
            "partial_shipment_weight",
            "missing_receipt_weight",
        ):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} cannot be negative: {getattr(self, name)}")
        if self.score_precision <= 0:
            raise ValueError("score_precision must be positive")


DEFAULT_POLICY = MatchPolicy()


def normalize_description(description: str) -> str:
    """Case-fold, collapse whitespace and trim surrounding punctuation."""
    return " ".join(description.casefold().split()).strip(_STRIP_CHARS)


def _require(condition: bool, document: str, field: str, reason: str) -> None:
    if not condition:
        raise MatchValidationError(document, field, reason)


def _index_lines(document: str, descriptions: Sequence[str]) -> dict[str, int]:
    index: dict[str, int] = {}
    for position, description in enumerate(descriptions):
        _require(
            description is not None and bool(description.strip()),
            document, f"lines[{position}].description", "description is required",
        )
        key = normalize_description(description)
        _require(key not in index, document, f"lines[{position}].description",
                 f"duplicate line {description!r}")
        index[key] = position
    return index


def _validate(
    invoice: Invoice,
    purchase_order: PurchaseOrder | None,
    goods_receipt: GoodsReceipt | None,
) -> None:
    _require(invoice is not None, "invoice", "invoice", "invoice is required")
    _require(bool(invoice.lines), "invoice", "lines", "invoice has no line items")
    _require(not invoice.total.is_negative(), "invoice", "total", "total cannot be negative")
    for i, line in enumerate(invoice.lines):
        _require(line.quantity >= 0, "invoice", f"lines[{i}].quantity", "quantity cannot be negative")
        _require(line.unit_price >= 0, "invoice", f"lines[{i}].unit_price", "unit price cannot be negative")
    _index_lines("invoice", [line.description for line in invoice.lines])

    if purchase_order is not None:
        for i, line in enumerate(purchase_order.lines):
            _require(line.quantity >= 0, "purchase_order", f"lines[{i}].quantity", "quantity cannot be negative")
            _require(line.unit_price >= 0, "purchase_order", f"lines[{i}].unit_price", "unit price cannot be negative")
        _index_lines("purchase_order", [line.description for line in purchase_order.lines])

    if goods_receipt is not None:
        for i, line in enumerate(goods_receipt.lines):
            _require(line.quantity_ordered >= 0, "goods_receipt", f"lines[{i}].quantity_ordered",
                     "quantity cannot be negative")
            _require(line.quantity_received >= 0, "goods_receipt", f"lines[{i}].quantity_received",
                     "quantity cannot be negative")
        _index_lines("goods_receipt", [line.description for line in goods_receipt.lines])
        if purchase_order is not None:
            _require(
                goods_receipt.po_number == purchase_order.po_number,
                "goods_receipt", "po_number",
                f"receipt {goods_receipt.gr_number} is for {goods_receipt.po_number}, "
                f"not {purchase_order.po_number}",
            )


def _fingerprint(
    invoice: Invoice,
    purchase_order: PurchaseOrder | None,
    goods_receipt: GoodsReceipt | None,
    policy: MatchPolicy,
    thresholds: RecommendationThresholds,
) -> str:
    payload = {
        "invoice": {
            "id": invoice.id,
            "total": invoice.total.amount,
            "currency": invoice.currency,
            "lines": [[l.description, l.quantity, l.unit_price] for l in invoice.lines],
        },
        "purchase_order": None if purchase_order is None else {
            "po_number": purchase_order.po_number,
            "currency": purchase_order.currency,
            "lines": [[l.description, l.quantity, l.unit_price] for l in purchase_order.lines],
        },
        "goods_receipt": None if goods_receipt is None else {
            "gr_number": goods_receipt.gr_number,
            "currency": goods_receipt.currency,
            "lines": [
                [l.description, l.quantity_ordered, l.quantity_received]
                for l in goods_receipt.lines
            ],
        },
        "policy": {
            "price_tolerance_percent": policy.price_tolerance_percent,
            "quantity_weight": policy.quantity_weight,
            "price_weight": policy.price_weight,
            "missing_line_weight": policy.missing_line_weight,
            "partial_shipment_weight": policy.partial_shipment_weight,
            "missing_receipt_weight": policy.missing_receipt_weight,
            "score_precision": policy.score_precision,
        },
        "thresholds": {
            "approve_score": thresholds.approve_score,
            "material_price_variance_percent": thresholds.material_price_variance_percent,
            "escalation_overcharge_amount": thresholds.escalation_overcharge_amount,
        },
    }
    return hash_payload(payload)


def _ratio_points(weight: Decimal, value: Decimal, basis: Decimal) -> Decimal:
    if basis <= 0 or weight == 0:
        return _ZERO
    return weight * value / basis * _HUNDRED


def _sort_key(d: Discrepancy) -> tuple:
    return (-d.monetary_impact, KIND_ORDER[d.kind], normalize_description(d.description))


def combine_receipts(receipts: Sequence[GoodsReceipt]) -> GoodsReceipt | None:
    """Merge several receipts against one PO into a single receipt view.

    Received quantities are summed per line; the ordered quantity is the
    largest any receipt reports.  Returns None for an empty sequence.

    Raises:
        MatchValidationError: receipts reference different POs or currencies.
    """
    if not receipts:
        return None
    if len(receipts) == 1:
        return receipts[0]

    po_numbers = {r.po_number for r in receipts}
    _require(len(po_numbers) == 1, "goods_receipt", "po_number",
             f"receipts span several purchase orders: {sorted(po_numbers)}")
    currencies = {r.currency for r in receipts if r.currency is not None}
    _require(len(currencies) <= 1, "goods_receipt", "currency",
             f"receipts disagree on currency: {sorted(currencies)}")

    merged: dict[str, list] = {}
    for receipt in receipts:
        for line in receipt.lines:
            key = normalize_description(line.description)
            if key not in merged:
                merged[key] = [line.description, line.quantity_ordered, _ZERO]
            entry = merged[key]
            entry[1] = max(entry[1], line.quantity_ordered)
            entry[2] += line.quantity_received

    lines = []
    for description, ordered, received in merged.values():
        if received >= ordered:
            status = ReceiptLineStatus.COMPLETE
        elif received > 0:
            status = ReceiptLineStatus.PARTIAL
        else:
            status = ReceiptLineStatus.SHORT
        lines.append(GoodsReceiptLine(description, ordered, received, status))

    dates = [r.receipt_date for r in receipts if r.receipt_date is not None]
    receivers = {r.received_by for r in receipts}
    return GoodsReceipt(
        id=receipts[0].id,
        gr_number="+".join(r.gr_number for r in receipts),
        po_number=receipts[0].po_number,
        lines=tuple(lines),
        receipt_date=max(dates) if dates else None,
        received_by=receivers.pop() if len(receivers) == 1 else None,
        currency=currencies.pop() if currencies else None,
    )


class ThreeWayMatchEngine:
    """
    Scores an invoice against its purchase order and goods receipt.

    Contract:
        ``match`` is a pure function of its arguments and the engine's
        policy/thresholds.  The engine holds no mutable state and may be
        shared across threads.
    """

    def __init__(
        self,
        policy: MatchPolicy | None = None,
        thresholds: RecommendationThresholds | None = None,
    ) -> None:
        self._policy = policy or DEFAULT_POLICY
        self._thresholds = thresholds or RecommendationThresholds()

    @property
    def policy(self) -> MatchPolicy:
        return self._policy

    @traced_engine(
        "three_way_match", "1.0",
        fingerprint_fields=("invoice", "purchase_order", "goods_receipt"),
    )
    def match(
        self,
        invoice: Invoice,
        purchase_order: PurchaseOrder | None = None,
        goods_receipt: GoodsReceipt | None = None,
    ) -> MatchResult:
        """Match ``invoice`` against ``purchase_order`` and ``goods_receipt``.

        Raises:
            MatchValidationError: malformed input; no partial result.
        """
        t0 = time.monotonic()
        _validate(invoice, purchase_order, goods_receipt)
        fingerprint = _fingerprint(invoice, purchase_order, goods_receipt,
                                   self._policy, self._thresholds)

        logger.info("match_started", extra={
            "invoice_id": str(invoice.id),
            "po_number": purchase_order.po_number if purchase_order else None,
            "gr_number": goods_receipt.gr_number if goods_receipt else None,
            "invoice_lines": len(invoice.lines),
        })

        if purchase_order is None:
            discrepancies = (Discrepancy(
                kind=DiscrepancyKind.NO_PO_REFERENCE,
                description="",
                message=(
                    f"No purchase order found for reference {invoice.po_number!r}"
                    if invoice.po_number else "Invoice has no purchase order reference"
                ),
                monetary_impact=invoice.total.amount,
                penalty=_HUNDRED,
            ),)
            return self._finish(invoice, None, goods_receipt, _ZERO, discrepancies, fingerprint, t0)

        mismatch = self._currency_mismatch(invoice, purchase_order, goods_receipt)
        if mismatch is not None:
            logger.warning("match_currency_mismatch", extra={
                "invoice_id": str(invoice.id),
                "invoice_currency": invoice.currency,
                "po_currency": purchase_order.currency,
                "gr_currency": goods_receipt.currency if goods_receipt else None,
            })
            return self._finish(invoice, purchase_order, goods_receipt, _ZERO,
                                (mismatch,), fingerprint, t0)

        discrepancies = self._compare_lines(invoice, purchase_order, goods_receipt)
        penalty = sum((d.penalty for d in discrepancies), _ZERO)
        score = _HUNDRED - penalty
        return self._finish(invoice, purchase_order, goods_receipt, score,
                            tuple(sorted(discrepancies, key=_sort_key)), fingerprint, t0)

    def _currency_mismatch(
        self,
        invoice: Invoice,
        purchase_order: PurchaseOrder,
        goods_receipt: GoodsReceipt | None,
    ) -> Discrepancy | None:
        invoice_currency = invoice.currency
        po_currency = purchase_order.currency.strip().upper()
        if po_currency != invoice_currency:
            return Discrepancy(
                kind=DiscrepancyKind.CURRENCY_MISMATCH,
                description="",
                message=(
                    f"Invoice currency {invoice_currency} does not match "
                    f"purchase order currency {po_currency}"
                ),
                penalty=_HUNDRED,
            )
        if goods_receipt is not None and goods_receipt.currency is not None:
            gr_currency = goods_receipt.currency.strip().upper()
            if gr_currency != invoice_currency:
                return Discrepancy(
                    kind=DiscrepancyKind.CURRENCY_MISMATCH,
                    description="",
                    message=(
                        f"Invoice currency {invoice_currency} does not match "
                        f"goods receipt currency {gr_currency}"
                    ),
                    penalty=_HUNDRED,
                )
        return None

    def _compare_lines(
        self,
        invoice: Invoice,
        purchase_order: PurchaseOrder,
        goods_receipt: GoodsReceipt | None,
    ) -> list[Discrepancy]:
        policy = self._policy
        lines_total = sum((l.extended for l in invoice.lines), _ZERO)
        basis = invoice.total.amount if invoice.total.amount > 0 else lines_total
        po_total = purchase_order.total

        invoice_lines = {normalize_description(l.description): l for l in invoice.lines}
        received: dict[str, Decimal] | None = None
        if goods_receipt is not None:
            received = {
                normalize_description(l.description): l.quantity_received
                for l in goods_receipt.lines
            }

        findings: list[Discrepancy] = []
        if goods_receipt is None:
            findings.append(Discrepancy(
                kind=DiscrepancyKind.NO_GOODS_RECEIPT,
                description="",
                message=(
                    "No goods receipt recorded against purchase order "
                    f"{purchase_order.po_number}"
                ),
                monetary_impact=basis,
                penalty=_ratio_points(policy.missing_receipt_weight, basis, basis),
            ))
        seen: set[str] = set()

        for po_line in purchase_order.lines:
            key = normalize_description(po_line.description)
            seen.add(key)
            inv_line = invoice_lines.get(key)
            # None = no receipt at all; a receipt without this line received nothing.
            qty_received = None if received is None else received.get(key, _ZERO)

            if inv_line is None:
                if qty_received is not None and qty_received == 0:
                    findings.append(Discrepancy(
                        kind=DiscrepancyKind.PARTIAL_SHIPMENT,
                        description=po_line.description,
                        message=f"{po_line.description}: not yet received and not billed",
                        expected=po_line.quantity,
                        actual=_ZERO,
                        penalty=_ratio_points(policy.partial_shipment_weight, po_line.extended, po_total),
                    ))
                else:
                    findings.append(Discrepancy(
                        kind=DiscrepancyKind.MISSING_LINE,
                        description=po_line.description,
                        message=f"{po_line.description}: ordered but missing on invoice",
                        expected=po_line.quantity,
                        actual=_ZERO,
                        monetary_impact=po_line.extended,
                        penalty=_ratio_points(policy.missing_line_weight, po_line.extended, po_total),
                        scope=MissingLineScope.NOT_INVOICED,
                    ))
                continue

            line_value = inv_line.extended
            if inv_line.quantity > po_line.quantity:
                excess = inv_line.quantity - po_line.quantity
                findings.append(Discrepancy(
                    kind=DiscrepancyKind.QUANTITY_OVER,
                    description=po_line.description,
                    message=(
                        f"{po_line.description}: billed {inv_line.quantity}, "
                        f"ordered {po_line.quantity}"
                    ),
                    expected=po_line.quantity,
                    actual=inv_line.quantity,
                    monetary_impact=excess * inv_line.unit_price,
                    penalty=_ratio_points(policy.quantity_weight, line_value, basis),
                ))
            elif qty_received is not None and inv_line.quantity > qty_received:
                shortfall = inv_line.quantity - qty_received
                findings.append(Discrepancy(
                    kind=DiscrepancyKind.QUANTITY_SHORT,
                    description=po_line.description,
                    message=(
                        f"{po_line.description}: billed {inv_line.quantity}, "
                        f"received {qty_received}"
                    ),
                    expected=qty_received,
                    actual=inv_line.quantity,
                    monetary_impact=shortfall * inv_line.unit_price,
                    penalty=_ratio_points(policy.quantity_weight, line_value, basis),
                ))
            elif (
                qty_received is not None
                and inv_line.quantity == qty_received
                and qty_received < po_line.quantity
            ):
                findings.append(Discrepancy(
                    kind=DiscrepancyKind.PARTIAL_SHIPMENT,
                    description=po_line.description,
                    message=(
                        f"{po_line.description}: partial shipment, billed "
                        f"{inv_line.quantity} of {po_line.quantity} ordered as received"
                    ),
                    expected=po_line.quantity,
                    actual=inv_line.quantity,
                    penalty=_ratio_points(policy.partial_shipment_weight, line_value, basis),
                ))

            price_finding = self._price_variance(po_line.description, po_line.unit_price,
                                                 inv_line.unit_price, inv_line.quantity, basis)
            if price_finding is not None:
                findings.append(price_finding)

        for key, inv_line in invoice_lines.items():
            if key in seen:
                continue
            findings.append(Discrepancy(
                kind=DiscrepancyKind.MISSING_LINE,
                description=inv_line.description,
                message=f"{inv_line.description}: billed but not on purchase order",
                expected=_ZERO,
                actual=inv_line.quantity,
                monetary_impact=inv_line.extended,
                penalty=_ratio_points(policy.quantity_weight, inv_line.extended, basis),
                scope=MissingLineScope.NOT_ON_PO,
            ))

        return findings

    def _price_variance(
        self,
        description: str,
        po_price: Decimal,
        invoice_price: Decimal,
        quantity: Decimal,
        basis: Decimal,
    ) -> Discrepancy | None:
        if invoice_price == po_price:
            return None
        variance_percent: Decimal | None = None
        if po_price > 0:
            variance_percent = (invoice_price - po_price) / po_price * _HUNDRED
            if abs(variance_percent) <= self._policy.price_tolerance_percent:
                return None

        diff = invoice_price - po_price
        overcharge = max(diff, _ZERO) * quantity
        return Discrepancy(
            kind=DiscrepancyKind.PRICE_VARIANCE,
            description=description,
            message=(
                f"{description}: unit price {invoice_price} vs PO {po_price}"
                + (f" ({variance_percent.quantize(Decimal('0.01'))}%)"
                   if variance_percent is not None else "")
            ),
            expected=po_price,
            actual=invoice_price,
            monetary_impact=abs(diff) * quantity,
            penalty=_ratio_points(self._policy.price_weight, overcharge, basis),
            overcharge=overcharge,
            variance_percent=variance_percent,
        )

    def _finish(
        self,
        invoice: Invoice,
        purchase_order: PurchaseOrder | None,
        goods_receipt: GoodsReceipt | None,
        raw_score: Decimal,
        discrepancies: tuple[Discrepancy, ...],
        fingerprint: str,
        t0: float,
    ) -> MatchResult:
        clamped = min(max(raw_score, _ZERO), _HUNDRED)
        score = clamped.quantize(self._policy.score_precision, rounding=ROUND_HALF_UP)

        result = MatchResult(
            invoice_id=invoice.id,
            score=score,
            discrepancies=discrepancies,
            recommendation=Recommendation.REVIEW,
            fingerprint=fingerprint,
            po_number=purchase_order.po_number if purchase_order else invoice.po_number,
            gr_number=goods_receipt.gr_number if goods_receipt else None,
            currency=invoice.currency,
        )
        recommendation, rule = decide(result, None, self._thresholds)
        result = replace(result, recommendation=recommendation)

        logger.info("match_completed", extra={
            "invoice_id": str(invoice.id),
            "score": str(score),
            "discrepancy_count": len(discrepancies),
            "discrepancy_kinds": sorted(k.value for k in result.kinds),
            "recommendation": recommendation.value,
            "rule": rule,
            "fingerprint": fingerprint,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result


def match_three_way(
    invoice: Invoice,
    purchase_order: PurchaseOrder | None,
    goods_receipt: GoodsReceipt | None,
    policy: MatchPolicy | None = None,
    thresholds: RecommendationThresholds | None = None,
) -> MatchResult:
    """Convenience wrapper: ``ThreeWayMatchEngine(policy, thresholds).match(...)``."""
    return ThreeWayMatchEngine(policy, thresholds).match(invoice, purchase_order, goods_receipt)
