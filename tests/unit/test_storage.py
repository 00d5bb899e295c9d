"""Tests for storage implementations."""

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest

from diagnosis_api.storage import DynamoDBStore, SQLStore, create_store
from diagnosis_api.storage.dynamodb import access_pk, diagnosis_pk


def an_hour_ago() -> datetime:
    return datetime.now(UTC) - timedelta(hours=1)


class TestSQLStore:
    """Test the databases-backed store."""

    @pytest.mark.asyncio
    async def test_save_and_get_latest(self, sql_store):
        saved = await sql_store.save_diagnosis("foo", "mild", None, "first")

        record = await sql_store.get_latest_diagnosis("foo", "mild", None, an_hour_ago())

        assert record is not None
        assert record["diagnosis_result"] == "first"
        assert record["competitor_id"] is None
        assert record["created_at"].tzinfo is not None
        assert abs(record["created_at"] - saved["created_at"]) < timedelta(seconds=1)

    @pytest.mark.asyncio
    async def test_returns_newest_row(self, sql_store):
        await sql_store.save_diagnosis("foo", "mild", None, "old")
        await sql_store.save_diagnosis("foo", "mild", None, "new")

        record = await sql_store.get_latest_diagnosis("foo", "mild", None, an_hour_ago())

        assert record["diagnosis_result"] == "new"

    @pytest.mark.asyncio
    async def test_competitor_partitions_are_exact(self, sql_store):
        await sql_store.save_diagnosis("foo", "mild", None, "solo")
        await sql_store.save_diagnosis("foo", "mild", "bar", "vs bar")

        since = an_hour_ago()
        assert (await sql_store.get_latest_diagnosis("foo", "mild", None, since))[
            "diagnosis_result"
        ] == "solo"
        assert (await sql_store.get_latest_diagnosis("foo", "mild", "bar", since))[
            "diagnosis_result"
        ] == "vs bar"
        assert await sql_store.get_latest_diagnosis("foo", "mild", "baz", since) is None
        assert await sql_store.get_latest_diagnosis("foo", "spicy", None, since) is None

    @pytest.mark.asyncio
    async def test_ignores_rows_before_since(self, sql_store):
        await sql_store.save_diagnosis("foo", "mild", None, "stale")

        record = await sql_store.get_latest_diagnosis(
            "foo", "mild", None, datetime.now(UTC) + timedelta(seconds=1)
        )

        assert record is None

    @pytest.mark.asyncio
    async def test_count_and_record_access(self, sql_store):
        await sql_store.record_access("1.2.3.4", "diagnose")
        await sql_store.record_access("1.2.3.4", "diagnose")
        await sql_store.record_access("5.6.7.8", "diagnose")

        assert await sql_store.count_access("1.2.3.4", "diagnose", an_hour_ago()) == 2
        assert await sql_store.count_access("5.6.7.8", "diagnose", an_hour_ago()) == 1
        assert await sql_store.count_access("1.2.3.4", "other", an_hour_ago()) == 0
        assert (
            await sql_store.count_access(
                "1.2.3.4", "diagnose", datetime.now(UTC) + timedelta(seconds=1)
            )
            == 0
        )

    @pytest.mark.asyncio
    async def test_startup_is_idempotent(self, tmp_path):
        url = f"sqlite+aiosqlite:///{tmp_path / 'twice.db'}"
        first = SQLStore(url)
        await first.startup()
        await first.save_diagnosis("foo", "mild", None, "kept")
        await first.shutdown()

        second = SQLStore(url)
        await second.startup()
        rows = await second.fetch_diagnoses()
        await second.shutdown()

        assert [row["diagnosis_result"] for row in rows] == ["kept"]

    @pytest.mark.asyncio
    async def test_health_check(self, sql_store):
        assert await sql_store.health_check() is True


class TestDynamoDBStore:
    """Test the DynamoDB store against a mocked table."""

    def make_store(self) -> tuple[DynamoDBStore, MagicMock]:
        store = DynamoDBStore("dynamodb://diagnosis-table?region=eu-west-1")
        table = MagicMock()
        store.table = table
        return store, table

    def test_parses_url(self):
        store = DynamoDBStore("dynamodb://diagnosis-table?region=eu-west-1")
        assert store.table_name == "diagnosis-table"
        assert store.region == "eu-west-1"

    def test_partition_keys(self):
        assert diagnosis_pk("foo", "mild", None) == "diagnosis#foo#mild#-"
        assert diagnosis_pk("foo", "mild", "bar") == "diagnosis#foo#mild#bar"
        assert access_pk("1.2.3.4", "diagnose") == "access#1.2.3.4#diagnose"

    @pytest.mark.asyncio
    async def test_save_diagnosis(self):
        store, table = self.make_store()

        record = await store.save_diagnosis("foo", "mild", None, "text")

        item = table.put_item.call_args.kwargs["Item"]
        assert item["pk"] == "diagnosis#foo#mild#-"
        assert item["sk"] == record["created_at"].isoformat()
        assert item["diagnosis_result"] == "text"
        assert "competitor_id" not in item

    @pytest.mark.asyncio
    async def test_get_latest_diagnosis(self):
        store, table = self.make_store()
        created = datetime.now(UTC)
        table.query.return_value = {
            "Items": [
                {
                    "pk": "diagnosis#foo#mild#bar",
                    "sk": created.isoformat(),
                    "username": "foo",
                    "mode": "mild",
                    "competitor_id": "bar",
                    "diagnosis_result": "text",
                }
            ]
        }

        record = await store.get_latest_diagnosis("foo", "mild", "bar", an_hour_ago())

        assert record == {
            "username": "foo",
            "mode": "mild",
            "competitor_id": "bar",
            "diagnosis_result": "text",
            "created_at": created,
        }
        kwargs = table.query.call_args.kwargs
        assert kwargs["ScanIndexForward"] is False
        assert kwargs["Limit"] == 1

    @pytest.mark.asyncio
    async def test_get_latest_diagnosis_miss(self):
        store, table = self.make_store()
        table.query.return_value = {"Items": []}

        assert await store.get_latest_diagnosis("foo", "mild", None, an_hour_ago()) is None

    @pytest.mark.asyncio
    async def test_count_access_follows_pagination(self):
        store, table = self.make_store()
        table.query.side_effect = [
            {"Count": 4, "LastEvaluatedKey": {"pk": "p", "sk": "s"}},
            {"Count": 3},
        ]

        assert await store.count_access("1.2.3.4", "diagnose", an_hour_ago()) == 7
        assert table.query.call_count == 2
        assert table.query.call_args.kwargs["ExclusiveStartKey"] == {"pk": "p", "sk": "s"}
        assert table.query.call_args.kwargs["Select"] == "COUNT"

    @pytest.mark.asyncio
    async def test_record_access(self):
        store, table = self.make_store()

        await store.record_access("1.2.3.4", "diagnose")

        item = table.put_item.call_args.kwargs["Item"]
        assert item["pk"] == "access#1.2.3.4#diagnose"
        assert item["ip_address"] == "1.2.3.4"


class TestCreateStore:
    """Test the store factory."""

    def test_sql_by_default(self):
        store = create_store("sqlite+aiosqlite:///:memory:")
        assert isinstance(store, SQLStore)

    def test_dynamodb_by_scheme(self):
        store = create_store("dynamodb://table?region=us-east-1")
        assert isinstance(store, DynamoDBStore)
        assert store.table_name == "table"

    def test_lambda_detection(self):
        with patch.dict("os.environ", {"AWS_LAMBDA_FUNCTION_NAME": "fn"}):
            store = create_store()
        assert isinstance(store, DynamoDBStore)
