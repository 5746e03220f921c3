"""
Multi-Tenant Access Guard

WHY: Make horizontal privilege escalation (company A reading or writing
company B's rows) impossible regardless of which route handles the request.

SECURITY INVARIANTS:
1. Every authenticated request carries a TenantContext (g.tenant)
2. A principal may only act inside its own company. No role is exempt.
3. Only companies with status='active' pass the guard
4. Resource ownership is checked only after company access succeeded;
   calling it earlier is a programming error (InternalConsistencyViolation)
5. Missing -> NotFound, foreign -> AccessDenied, both with the same client
   message so probing cannot tell "absent" from "owned by someone else"
6. Every denial is recorded as a CROSS_TENANT_ACCESS_DENIED security event

USAGE:
    guard = TenantGuard(Repositories.for_session())
    guard.validate_company_access(g.tenant, company_id)
    warehouse = guard.validate_resource_ownership("warehouse", warehouse_id, g.tenant)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from flask import current_app, g

from ..errors import AccessDenied, AuthenticationRequired, CompanyInactive, InternalConsistencyViolation, NotFound
from ..models import Product
from .security_service import record_request_event
from .store import Repositories


CROSS_TENANT_EVENT = "CROSS_TENANT_ACCESS_DENIED"


@dataclass(frozen=True)
class Principal:
    """Authenticated identity supplied by the session layer."""
    id: int
    company_id: int
    role: str
    email: str


@dataclass
class TenantContext:
    """
    Per-request tenant state.

    company_type is cached after the first company lookup so later checks in
    the same request do not hit the database again.
    """
    principal: Principal
    company_type: str | None = None
    is_validated: bool = False

    @property
    def company_id(self) -> int:
        return self.principal.company_id


def get_current_context() -> TenantContext:
    """
    Get the TenantContext established by @require_auth.

    Raises AuthenticationRequired if it is missing.
    """
    context = getattr(g, "tenant", None)
    if context is None:
        raise AuthenticationRequired("Authentication required")
    return context


class ResourceOwnershipPolicy:
    """
    Single home for company-type-dependent ownership rules.

    Suppliers own products through supplier_id, dealers through dealer_id.
    Every other resource is owned through its own company_id column.
    """

    PRODUCT_OWNER_FIELDS = {
        "supplier": "supplier_id",
        "dealer": "dealer_id",
    }

    RESOURCE_LABELS = {
        "product": "Product",
        "inventory": "Inventory item",
        "warehouse": "Warehouse",
        "order": "Order",
    }

    def __init__(self, repositories: Repositories):
        self._loaders = {
            "product": repositories.product,
            "inventory": repositories.inventory,
            "warehouse": repositories.warehouse,
            "order": repositories.order,
        }

    def product_owner_field(self, company_type: str) -> str:
        try:
            return self.PRODUCT_OWNER_FIELDS[company_type]
        except KeyError:
            raise InternalConsistencyViolation(f"Unknown company type: {company_type}")

    def owns_product(self, product, company_id: int, company_type: str) -> bool:
        return product is not None and getattr(product, self.product_owner_field(company_type)) == company_id

    def product_criterion(self, company_id: int, company_type: str):
        """SQLAlchemy filter selecting the products a company owns."""
        return getattr(Product, self.product_owner_field(company_type)) == company_id

    def predicate_for(self, resource_type: str, company_type: str) -> Callable[[object, int], bool]:
        if resource_type == "product":
            return lambda product, company_id: self.owns_product(product, company_id, company_type)
        if resource_type == "inventory":
            # Also checks the product link so a corrupted product_id cannot
            # expose another company's catalogue.
            return lambda inv, company_id: (
                inv.company_id == company_id
                and self.owns_product(inv.product, company_id, company_type)
            )
        if resource_type == "warehouse":
            return lambda warehouse, company_id: warehouse.company_id == company_id
        if resource_type == "order":
            return lambda order, company_id: order.company_id == company_id
        raise InternalConsistencyViolation(f"Unknown resource type: {resource_type}")

    def check(self, resource_type: str, resource_id: int, company_id: int, company_type: str):
        """Return the resource if the company owns it, else raise NotFound/AccessDenied."""
        predicate = self.predicate_for(resource_type, company_type)
        label = self.RESOURCE_LABELS[resource_type]
        message = f"{label} not found or access denied"

        resource = self._loaders[resource_type].find_one(id=resource_id)
        if resource is None:
            raise NotFound(message)
        if not predicate(resource, company_id):
            raise AccessDenied(message)
        return resource


# Bound to the request session; used by services that run outside a guard.
default_policy = ResourceOwnershipPolicy(Repositories.for_session())


class TenantGuard:
    def __init__(self, repositories: Repositories, policy: ResourceOwnershipPolicy | None = None, audit=None):
        self.repositories = repositories
        self.policy = policy or ResourceOwnershipPolicy(repositories)
        self._audit = audit or record_request_event

    def validate_company_access(self, context: TenantContext | None, requested_company_id: int) -> TenantContext:
        if context is None or context.principal is None or context.principal.company_id is None:
            raise AuthenticationRequired("Authentication required")
        if requested_company_id is None:
            raise AccessDenied("Company ID required in request")

        principal = context.principal
        if principal.company_id != requested_company_id:
            self._audit(
                CROSS_TENANT_EVENT,
                success=False,
                reason=f"Principal of company {principal.company_id} requested company {requested_company_id}",
                target_type="company",
                target_id=requested_company_id,
                principal=principal,
            )
            raise AccessDenied("Access denied: you can only access resources from your own company")

        if context.company_type is None:
            company = self.repositories.company.find_one(id=principal.company_id)
            if company is None:
                raise AccessDenied("Invalid company association")
            if company.status != "active":
                raise CompanyInactive("Company account is not active")
            context.company_type = company.type

        context.is_validated = True
        return context

    def validate_resource_ownership(self, resource_type: str, resource_id: int, context: TenantContext | None):
        if context is None or not context.is_validated:
            raise InternalConsistencyViolation(
                "Multi-tenant validation required before resource ownership check"
            )

        try:
            return self.policy.check(resource_type, resource_id, context.company_id, context.company_type)
        except (NotFound, AccessDenied) as exc:
            self._audit(
                CROSS_TENANT_EVENT,
                success=False,
                reason=f"{type(exc).__name__}: {resource_type} {resource_id}",
                target_type=resource_type,
                target_id=resource_id,
                principal=context.principal,
            )
            raise


def get_guard() -> TenantGuard:
    return current_app.extensions["tubex.guard"]
