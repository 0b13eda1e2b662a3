"""
Tests 601-620: Dashboard route -- KPIs, monthly chart, breakdowns and
per-section degradation.
"""
import datetime

UTC = datetime.timezone.utc


class TestDashboard:

    async def test_601_kpis_cover_active_scope_only(self, client, staff, seed, ledger):
        done = await seed.grant(
            year=ledger["year"], fund_source=ledger["fund_source"], project_name="Finished", amount="4000", status="completed"
        )
        await seed.disbursement(grant=ledger["grant"], amount="2500.00", payment_date=datetime.date(2024, 3, 20))
        await seed.disbursement(grant=done, amount="4000.00", payment_date=datetime.date(2024, 3, 21))

        r = await client.get("/api/dashboard", params={"year": 2024}, headers=staff.headers)
        assert r.status_code == 200
        data = r.json()
        assert data["kpis"] == {
            "total_approved": 10000.0,
            "total_disbursed": 2500.0,
            "remaining_balance": 7500.0,
            "active_grants": 1,
        }
        assert data["degraded"] == []

    async def test_602_monthly_series_for_selected_year(self, client, staff, seed, ledger):
        await seed.disbursement(grant=ledger["grant"], amount="1000.00", payment_date=datetime.date(2024, 7, 1))
        r = await client.get("/api/dashboard", params={"year": 2024}, headers=staff.headers)
        data = r.json()
        assert data["selected_year"] == 2024
        assert len(data["monthly"]) == 12
        assert data["monthly"][0]["month"] == "Jan"
        assert data["monthly"][2] == {"month": "Mar", "budget_added": 10000.0, "disbursed": 0.0}
        assert data["monthly"][6]["disbursed"] == 1000.0

    async def test_603_unavailable_year_falls_back_to_latest(self, client, staff, ledger):
        r = await client.get("/api/dashboard", params={"year": 1990}, headers=staff.headers)
        data = r.json()
        this_year = datetime.date.today().year
        assert data["available_years"][0] == max(this_year, 2024)
        assert 2024 in data["available_years"]
        assert data["selected_year"] == data["available_years"][0]

    async def test_604_status_distribution_counts_all_grants(self, client, staff, seed, ledger):
        await seed.grant(year=ledger["year"], fund_source=ledger["fund_source"], status="completed")
        await seed.grant(year=ledger["year"], fund_source=ledger["fund_source"], status="ongoing")
        r = await client.get("/api/dashboard", headers=staff.headers)
        dist = r.json()["status_distribution"]
        assert [(s["name"], s["value"]) for s in dist] == [("Approved", 1), ("Ongoing", 1), ("Completed", 1)]

    async def test_605_budget_by_fund_source_sorted_descending(self, client, staff, seed, ledger):
        a = await seed.fund_source("A")
        b = await seed.fund_source("B")
        await seed.grant(year=ledger["year"], fund_source=a, amount="100")
        await seed.grant(year=ledger["year"], fund_source=b, amount="300")
        await seed.grant(year=ledger["year"], fund_source=a, amount="50")
        r = await client.get("/api/dashboard", headers=staff.headers)
        rows = [(s["name"], s["value"]) for s in r.json()["budget_by_fund_source"]]
        assert rows == [("State Development Fund", 10000.0), ("B", 300.0), ("A", 150.0)]

    async def test_606_top_remaining_and_recent_lists(self, client, staff, seed, ledger):
        for i in range(6):
            await seed.grant(
                year=ledger["year"],
                fund_source=ledger["fund_source"],
                project_name=f"Project {i}",
                amount=str(100 + i),
                created_at=datetime.datetime(2024, 5, 1 + i, tzinfo=UTC),
            )
        r = await client.get("/api/dashboard", headers=staff.headers)
        data = r.json()
        assert [t["project"] for t in data["top_remaining"]] == [
            "Rural Water Supply", "Project 5", "Project 4", "Project 3", "Project 2",
        ]
        assert data["top_remaining"][0]["color"] == "#1e3a8a"
        assert len(data["recent_grants"]) == 5
        assert data["recent_grants"][0]["project_name"] == "Project 5"

    async def test_607_failed_section_degrades_alone(self, client, staff, seed, ledger, monkeypatch):
        from ssgms.routes import dashboard

        async def _broken(db):
            raise RuntimeError("disbursements table unavailable")

        await seed.disbursement(grant=ledger["grant"], amount="10.00")
        monkeypatch.setattr(dashboard, "_load_disbursements", _broken)

        r = await client.get("/api/dashboard", headers=staff.headers)
        assert r.status_code == 200
        data = r.json()
        assert data["degraded"] == ["disbursements"]
        assert data["kpis"]["total_approved"] == 10000.0
        assert data["kpis"]["total_disbursed"] == 0.0
        assert data["recent_disbursements"] == []

    async def test_608_empty_database(self, client, staff):
        r = await client.get("/api/dashboard", headers=staff.headers)
        data = r.json()
        assert data["kpis"]["total_approved"] == 0.0
        assert data["available_years"] == [datetime.date.today().year]
        assert len(data["monthly"]) == 12
        assert data["top_remaining"] == []
