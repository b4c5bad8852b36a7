# Overview: Pytest coverage for the flask bags CLI commands.

from bagledger.models import Client, Driver, Organization
from bagledger.services import stock_service


class TestSeedDemo:

    def test_seed_creates_org_drivers_and_clients(self, app, db_session):
        runner = app.test_cli_runner()

        result = runner.invoke(args=['bags', 'seed-demo', '--org', 'Demo Waste Co', '--org-code', 'DEMO'])

        assert result.exit_code == 0
        assert "PASS Created organization" in result.output
        org = db_session.query(Organization).filter_by(code='DEMO').one()
        assert db_session.query(Driver).filter_by(org_id=org.id).count() == 2
        assert db_session.query(Client).filter_by(org_id=org.id).count() == 2

    def test_seed_is_idempotent(self, app, db_session):
        runner = app.test_cli_runner()
        runner.invoke(args=['bags', 'seed-demo'])

        result = runner.invoke(args=['bags', 'seed-demo'])

        assert result.exit_code == 0
        assert "Using existing organization" in result.output
        assert db_session.query(Organization).filter_by(code='DEMO').count() == 1


class TestAudit:

    def test_audit_consistent_ledger(self, app, db_session, org_a):
        stock_service.add_bags(org_a.id, 10)
        runner = app.test_cli_runner()

        result = runner.invoke(args=['bags', 'audit', '--org-id', str(org_a.id)])

        assert result.exit_code == 0
        assert "PASS Ledger is consistent." in result.output

    def test_audit_detects_tampered_stock(self, app, db_session, org_a):
        stock = stock_service.add_bags(org_a.id, 10)
        stock.available_bags = 11
        db_session.commit()
        runner = app.test_cli_runner()

        result = runner.invoke(args=['bags', 'audit', '--org-id', str(org_a.id)])

        assert result.exit_code == 1
        assert "FAIL Ledger is inconsistent." in result.output

    def test_audit_unknown_organization(self, app, db_session):
        runner = app.test_cli_runner()
        result = runner.invoke(args=['bags', 'audit', '--org-id', '99999'])
        assert result.exit_code == 1
