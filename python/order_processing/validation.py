"""Order admissibility checks.

``OrderValidationService`` never mutates an order and never raises for a
failing rule: each check returns a bool, and ``validate_order`` collects one
reason per failing check into a ``ValidationResult``.

Example:
    >>> validator = OrderValidationService(customers, products)
    >>> result = validator.validate_order(order)
    >>> if not result.valid:
    ...     print(result.errors)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from decimal import Decimal

from .adapters import CustomerDirectory, ProductCatalog
from .config import OrderProcessingConfig
from .logging import log_debug, log_error, log_info, log_trace, log_warn
from .models import Order


@dataclass
class ValidationResult:
    """Outcome of a validation call: a flag plus ordered reasons."""

    valid: bool = True
    errors: list[str] = field(default_factory=list)

    def add_error(self, error: str) -> None:
        self.errors.append(error)
        self.valid = False

    def add_errors(self, errors: Iterable[str]) -> None:
        for error in errors:
            self.add_error(error)

    def merge(self, other: ValidationResult) -> ValidationResult:
        self.add_errors(other.errors)
        if not other.valid:
            self.valid = False
        return self

    def __bool__(self) -> bool:
        return self.valid

    @classmethod
    def success(cls) -> ValidationResult:
        return cls(valid=True)

    @classmethod
    def invalid(cls, errors: str | Sequence[str]) -> ValidationResult:
        if isinstance(errors, str):
            errors = [errors]
        return cls(valid=False, errors=list(errors))


@dataclass(frozen=True)
class RuleContext:
    """Read-only collaborators a business rule may consult."""

    customers: CustomerDirectory
    products: ProductCatalog
    config: OrderProcessingConfig


@dataclass(frozen=True)
class BusinessRule:
    """A named business rule; ``check`` returns True when the order complies."""

    name: str
    check: Callable[[Order, RuleContext], bool]


def _location_restrictions(order: Order, ctx: RuleContext) -> bool:
    if order.shipping_address is None:
        return True
    country = order.shipping_address.country
    for product_id in order.quantities_by_product():
        if country in ctx.config.restricted_countries.get(product_id, ()):
            return False
    return True


def _product_combinations(order: Order, ctx: RuleContext) -> bool:
    present = set(order.quantities_by_product())
    return not any(a in present and b in present for a, b in ctx.config.incompatible_products)


def _time_boxed_offers(order: Order, ctx: RuleContext) -> bool:
    placed_at = order.created_at
    for product_id in order.quantities_by_product():
        starts_at, ends_at = ctx.products.get_offer_window(product_id)
        if starts_at is not None and placed_at < starts_at:
            return False
        if ends_at is not None and placed_at > ends_at:
            return False
    return True


def _customer_purchase_caps(order: Order, ctx: RuleContext) -> bool:
    for product_id, quantity in order.quantities_by_product().items():
        cap = ctx.products.get_purchase_cap(product_id)
        if cap is None:
            continue
        already = ctx.customers.get_purchased_quantity(order.customer_id, product_id)
        if already + quantity > cap:
            return False
    return True


def _required_complementary_products(order: Order, ctx: RuleContext) -> bool:
    present = set(order.quantities_by_product())
    return all(ctx.products.get_required_companions(pid) <= present for pid in present)


def _restricted_product_authorization(order: Order, ctx: RuleContext) -> bool:
    restricted = [
        pid for pid in order.quantities_by_product() if ctx.products.requires_authorization(pid)
    ]
    if not restricted:
        return True
    return ctx.customers.is_authorized_for_restricted_products(order.customer_id)


def _shipping_destination(order: Order, ctx: RuleContext) -> bool:
    if order.shipping_address is None:
        return False
    allowed = ctx.config.shippable_countries
    return allowed is None or order.shipping_address.country in allowed


def _minimum_order_value(order: Order, ctx: RuleContext) -> bool:
    return order.total_amount > 0


DEFAULT_BUSINESS_RULES: tuple[BusinessRule, ...] = (
    BusinessRule("location_restrictions", _location_restrictions),
    BusinessRule("product_combinations", _product_combinations),
    BusinessRule("time_boxed_offers", _time_boxed_offers),
    BusinessRule("customer_purchase_caps", _customer_purchase_caps),
    BusinessRule("required_complementary_products", _required_complementary_products),
    BusinessRule("restricted_product_authorization", _restricted_product_authorization),
    BusinessRule("shipping_destination", _shipping_destination),
    BusinessRule("minimum_order_value", _minimum_order_value),
)


class OrderValidationService:
    """Customer eligibility, availability, pricing, business rules and limits.

    Collaborator failures inside one check are logged and count as a failed
    check.
    """

    def __init__(
        self,
        customers: CustomerDirectory,
        products: ProductCatalog,
        config: OrderProcessingConfig | None = None,
        rules: Sequence[BusinessRule] | None = None,
    ) -> None:
        self._customers = customers
        self._products = products
        self._config = config or OrderProcessingConfig()
        self._rules = tuple(rules if rules is not None else DEFAULT_BUSINESS_RULES)
        self._rule_context = RuleContext(customers, products, self._config)

    @property
    def products(self) -> ProductCatalog:
        return self._products

    @property
    def rules(self) -> tuple[BusinessRule, ...]:
        return self._rules

    def validate_order(self, order: Order) -> ValidationResult:
        """Run every check and aggregate the failures.

        The customer check is a hard gate: when it fails no other check
        runs.
        """
        fields = {"order_id": order.order_id, "customer_id": order.customer_id}
        log_info("Starting order validation", fields)

        if not self.validate_customer(order.customer_id):
            log_error("Customer validation failed", fields)
            return ValidationResult.invalid(
                f"Customer validation failed for ID: {order.customer_id}"
            )

        result = ValidationResult.success()
        if not self.validate_product_availability(order):
            result.add_error(
                "One or more products in the order are not available in requested quantities"
            )
        if not self.validate_pricing(order):
            result.add_error("Pricing validation failed - current prices do not match order prices")
        if not self.validate_business_rules(order):
            result.add_error("Order violates one or more business rules")
        if not self.validate_order_limits(order):
            result.add_error("Order exceeds allowable limits (quantity or total value)")
        if self.requires_weekend_review(order):
            result.add_error(
                "High-value weekend orders require additional approval for non-preferred customers"
            )
        if self.has_fraud_patterns(order):
            log_warn("Possible fraud patterns detected", fields)
            result.add_error("Order flagged for possible fraud review")

        if result.valid:
            log_info("Order passed all validations", fields)
        else:
            log_info(f"Order failed validation with {len(result.errors)} error(s)", fields)
        return result

    def validate_customer(self, customer_id: str | None) -> bool:
        if not customer_id:
            log_error("Customer ID is missing")
            return False
        fields = {"customer_id": customer_id}
        customers = self._customers
        try:
            if not customers.customer_exists(customer_id):
                log_error("Customer does not exist", fields)
                return False
            if not customers.is_customer_active(customer_id):
                log_error("Customer is not active", fields)
                return False
            if not customers.has_valid_payment_method(customer_id):
                log_error("Customer has no valid payment methods", fields)
                return False
            if customers.is_customer_blocked(customer_id):
                log_error("Customer is blocked", fields)
                return False

            tier = customers.get_customer_tier(customer_id)
            limit = self._config.tier_order_limit(tier)
            outstanding = customers.get_outstanding_order_count(customer_id)
            if limit is not None and outstanding >= limit:
                log_error(
                    f"Customer has too many outstanding orders ({outstanding}) for tier {tier}",
                    fields,
                )
                return False
        except Exception as e:
            log_error(f"Error validating customer: {e}", {**fields, "error_type": type(e).__name__})
            return False

        log_debug("Customer passed all validation rules", fields)
        return True

    def validate_product_availability(self, order: Order) -> bool:
        if not order.items:
            log_error("Order has no items", {"order_id": order.order_id})
            return False

        products = self._products
        try:
            for product_id, requested in order.quantities_by_product().items():
                fields = {"order_id": order.order_id, "product_id": product_id}
                if not products.product_exists(product_id):
                    log_error("Product does not exist", fields)
                    return False
                if not products.is_product_active(product_id):
                    log_error("Product is not active", fields)
                    return False
                available = products.get_available_stock(product_id)
                if available < requested:
                    log_error(
                        f"Insufficient stock: requested {requested}, available {available}",
                        fields,
                    )
                    return False
                if products.has_ordering_restrictions(product_id):
                    log_error("Product has ordering restrictions", fields)
                    return False
        except Exception as e:
            log_error(
                f"Error validating product availability: {e}",
                {"order_id": order.order_id, "error_type": type(e).__name__},
            )
            return False
        return True

    def validate_pricing(self, order: Order) -> bool:
        if not order.items:
            log_error("Order has no items", {"order_id": order.order_id})
            return False

        tolerance = self._config.price_tolerance
        pricing_valid = True
        try:
            calculated = Decimal("0")
            for item in order.items:
                current = self._products.get_current_price(item.product_id)
                if abs(current - item.unit_price) > current * tolerance:
                    log_error(
                        f"Price mismatch: order price {item.unit_price}, current price {current}",
                        {"order_id": order.order_id, "product_id": item.product_id},
                    )
                    pricing_valid = False
                calculated += current * item.quantity

            expected = calculated - order.discount_amount
            if abs(expected - order.total_amount) > abs(expected) * tolerance:
                log_error(
                    f"Order total mismatch: order total {order.total_amount}, "
                    f"calculated total {expected}",
                    {"order_id": order.order_id},
                )
                pricing_valid = False

            if order.discount_amount > 0 and not self._discount_allowed(order):
                pricing_valid = False
        except Exception as e:
            log_error(
                f"Error validating pricing: {e}",
                {"order_id": order.order_id, "error_type": type(e).__name__},
            )
            return False
        return pricing_valid

    def _discount_allowed(self, order: Order) -> bool:
        pre_discount = order.total_amount + order.discount_amount
        max_discount = pre_discount * self._config.max_discount_ratio
        if order.discount_amount > max_discount:
            log_error(
                f"Discount {order.discount_amount} exceeds maximum allowed {max_discount}",
                {"order_id": order.order_id},
            )
            return False
        return True

    def validate_business_rules(self, order: Order) -> bool:
        for rule in self._rules:
            fields = {"order_id": order.order_id, "rule": rule.name}
            try:
                passed = rule.check(order, self._rule_context)
            except Exception as e:
                log_error(
                    f"Error evaluating business rule: {e}",
                    {**fields, "error_type": type(e).__name__},
                )
                return False
            log_trace(f"Business rule evaluated: {passed}", fields)
            if not passed:
                log_error("Business rule violated", fields)
                return False
        return True

    def validate_order_limits(self, order: Order) -> bool:
        config = self._config
        fields = {"order_id": order.order_id}
        try:
            if order.total_amount > config.max_order_value:
                log_error(
                    f"Order exceeds maximum value: {order.total_amount} > {config.max_order_value}",
                    fields,
                )
                return False
            if len(order.items) > config.max_items_per_order:
                log_error(
                    f"Order exceeds maximum items: {len(order.items)} > "
                    f"{config.max_items_per_order}",
                    fields,
                )
                return False
            for item in order.items:
                if item.quantity > config.max_quantity_per_item:
                    log_error(
                        f"Line quantity {item.quantity} exceeds {config.max_quantity_per_item}",
                        {**fields, "product_id": item.product_id},
                    )
                    return False
            for product_id, quantity in order.quantities_by_product().items():
                if quantity > config.max_quantity_per_item:
                    log_error(
                        f"Product quantity {quantity} exceeds {config.max_quantity_per_item}",
                        {**fields, "product_id": product_id},
                    )
                    return False

            tier = self._customers.get_customer_tier(order.customer_id)
            ceiling = config.tier_value_limit(tier)
            if order.total_amount > ceiling:
                log_error(
                    f"Order exceeds {tier} tier value limit: {order.total_amount} > {ceiling}",
                    fields,
                )
                return False
        except Exception as e:
            log_error(
                f"Error validating order limits: {e}",
                {**fields, "error_type": type(e).__name__},
            )
            return False
        return True

    def has_fraud_patterns(self, order: Order) -> bool:
        """Large quantities of expensive items."""
        return any(
            item.quantity > self._config.fraud_quantity_threshold
            and item.unit_price > self._config.fraud_unit_price_threshold
            for item in order.items
        )

    def requires_weekend_review(self, order: Order) -> bool:
        """High-value orders placed on a weekend by non-preferred customers."""
        if order.created_at.weekday() < 5:
            return False
        if order.total_amount < self._config.high_value_threshold:
            return False
        tier = (self._customers.get_customer_tier(order.customer_id) or "").upper()
        return tier not in self._config.preferred_tiers


__all__ = [
    "DEFAULT_BUSINESS_RULES",
    "BusinessRule",
    "OrderValidationService",
    "RuleContext",
    "ValidationResult",
]
