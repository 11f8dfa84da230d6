"""
Tests for the customer analytics command line script

Tests:
- Zero-order correction runs before the pipeline so the written JSON reflects it
- Pipeline errors map onto a non-zero exit code
"""

import json

from storeops.analytics.engine import CustomerAnalyticsEngine
from storeops.core.exceptions import DataSourceUnavailableError
from scripts import run_customer_analytics


class _Analytics:
    def model_dump_json(self, **kwargs):
        return json.dumps({"totalCustomers": 0})


def _record_calls(monkeypatch, test_settings, calls):
    async def fake_fix(self):
        calls.append("fix_zero_order_customers")
        return 1

    async def fake_run(self, **kwargs):
        calls.append("run")
        return _Analytics()

    monkeypatch.setattr(run_customer_analytics, "get_settings", lambda: test_settings)
    monkeypatch.setattr(CustomerAnalyticsEngine, "fix_zero_order_customers", fake_fix)
    monkeypatch.setattr(CustomerAnalyticsEngine, "run", fake_run)


class TestRunCustomerAnalytics:
    """Test the script's orchestration"""

    async def test_zero_order_fix_precedes_pipeline(self, monkeypatch, test_settings, tmp_path):
        calls = []
        _record_calls(monkeypatch, test_settings, calls)
        output = tmp_path / "analytics.json"

        exit_code = await run_customer_analytics.main(["--fix-zero-orders", "--output", str(output)])

        assert exit_code == 0
        assert calls == ["fix_zero_order_customers", "run"]
        assert json.loads(output.read_text()) == {"totalCustomers": 0}

    async def test_no_fix_without_flag(self, monkeypatch, test_settings, tmp_path):
        calls = []
        _record_calls(monkeypatch, test_settings, calls)

        exit_code = await run_customer_analytics.main(["--output", str(tmp_path / "out.json")])

        assert exit_code == 0
        assert calls == ["run"]

    async def test_pipeline_error_exit_code(self, monkeypatch, test_settings):
        async def failing_run(self, **kwargs):
            raise DataSourceUnavailableError("Store database unavailable")

        monkeypatch.setattr(run_customer_analytics, "get_settings", lambda: test_settings)
        monkeypatch.setattr(CustomerAnalyticsEngine, "run", failing_run)

        assert await run_customer_analytics.main([]) == 1
