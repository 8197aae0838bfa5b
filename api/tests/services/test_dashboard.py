"""Dashboard figures for each identity type."""
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conftest import make_invoice
from app.core.exceptions import AuthorizationError
from app.core.identity import Identity, identity_for
from app.models.billing import InvoiceStatus
from app.schemas.dashboard import LandlordDashboard, TenantDashboard
from app.services import ledger
from app.services.dashboard import build_dashboard

NOW = datetime(2025, 1, 20, 9, 0, tzinfo=timezone.utc)


class TestLandlordDashboard:
    async def test_portfolio_figures(self, db, building, invoice, landlord_identity, tenant_identity):
        sub = await ledger.submit_payment(db, tenant_identity, invoice.id, "TX1")
        await ledger.approve_payment(db, landlord_identity, sub.payment.id, now=NOW)

        stats = await build_dashboard(landlord_identity, db, NOW)

        assert isinstance(stats, LandlordDashboard)
        assert stats.total_properties == 1
        assert stats.total_units == 3
        assert stats.total_tenants == 2
        assert stats.occupancy_rate == pytest.approx(66.7)
        assert stats.monthly_revenue == Decimal("1200.00")
        assert stats.pending_payments == 0
        assert [p.id for p in stats.recent_payments] == [sub.payment.id]

    async def test_empty_portfolio(self, db, other_landlord):
        stats = await build_dashboard(identity_for(other_landlord), db, NOW)
        assert stats.total_units == 0
        assert stats.occupancy_rate == 0.0
        assert stats.monthly_revenue == Decimal("0")


class TestTenantDashboard:
    async def test_balances(self, db, tenant, unit, invoice, tenant_identity):
        await make_invoice(db, tenant, unit, amount="50.00", status=InvoiceStatus.OVERDUE)
        await make_invoice(db, tenant, unit, amount="999.00", status=InvoiceStatus.CANCELLED)
        await ledger.submit_payment(db, tenant_identity, invoice.id, "TX1")

        stats = await build_dashboard(tenant_identity, db, NOW)

        assert isinstance(stats, TenantDashboard)
        assert stats.total_due == Decimal("1250.00")
        assert stats.paid_this_month == Decimal("0")
        assert stats.pending_payments == 1
        assert stats.overdue_invoices == 1
        assert len(stats.recent_invoices) == 3


class TestUnknownIdentity:
    async def test_base_identity_has_no_dashboard(self, db, tenant):
        class Visitor(Identity):
            def can_view_invoice(self, invoice, landlord_id):
                return False

            def scope_invoices(self, stmt):
                return stmt

        with pytest.raises(AuthorizationError):
            await build_dashboard(Visitor(tenant), db, NOW)
