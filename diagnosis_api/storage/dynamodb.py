"""DynamoDB store implementation."""

import asyncio
from datetime import UTC, datetime
from urllib.parse import urlparse

from loguru import logger

from ..types import CacheRecord

NO_COMPETITOR = "-"


def diagnosis_pk(username: str, mode: str, competitor_id: str | None) -> str:
    """Partition key for a cache partition.

    Instagram handles never contain "-" or "#", so neither collides with a real
    competitor handle.
    """
    return f"diagnosis#{username}#{mode}#{competitor_id or NO_COMPETITOR}"


def access_pk(ip_address: str, endpoint: str) -> str:
    """Partition key for an access log bucket."""
    return f"access#{ip_address}#{endpoint}"


class DynamoDBStore:
    """DynamoDB store keyed by ``pk`` (partition) and ``sk`` (ISO timestamp)."""

    def __init__(self, database_url: str):
        """Initialize DynamoDB store.

        Args:
            database_url: DynamoDB URL in format: dynamodb://table_name?region=us-east-1
        """
        parsed = urlparse(database_url)
        self.table_name = parsed.netloc or parsed.path.lstrip("/")
        self.region = None

        if parsed.query:
            for param in parsed.query.split("&"):
                if param.startswith("region="):
                    self.region = param.split("=")[1]

        self.table = None

    async def startup(self) -> None:
        """Initialize DynamoDB table reference."""
        import boto3

        resource = boto3.resource("dynamodb", region_name=self.region)
        self.table = resource.Table(self.table_name)
        logger.info(f"Connected to DynamoDB table: {self.table_name} in {self.region}")

    async def shutdown(self) -> None:
        """No cleanup needed for DynamoDB."""
        pass

    async def get_latest_diagnosis(
        self,
        username: str,
        mode: str,
        competitor_id: str | None,
        since: datetime,
    ) -> CacheRecord | None:
        """Get the newest diagnosis in the partition created at or after ``since``."""

        def _query():
            from boto3.dynamodb.conditions import Key

            response = self.table.query(
                KeyConditionExpression=Key("pk").eq(diagnosis_pk(username, mode, competitor_id))
                & Key("sk").gte(since.astimezone(UTC).isoformat()),
                ScanIndexForward=False,
                Limit=1,
            )
            return response["Items"]

        loop = asyncio.get_running_loop()
        items = await loop.run_in_executor(None, _query)
        if not items:
            return None

        item = items[0]
        return {
            "username": item["username"],
            "mode": item["mode"],
            "competitor_id": item.get("competitor_id"),
            "diagnosis_result": item["diagnosis_result"],
            "created_at": datetime.fromisoformat(item["sk"]),
        }

    async def save_diagnosis(
        self,
        username: str,
        mode: str,
        competitor_id: str | None,
        result: str,
    ) -> CacheRecord:
        """Save a diagnosis result."""
        created_at = datetime.now(UTC)
        item = {
            "pk": diagnosis_pk(username, mode, competitor_id),
            "sk": created_at.isoformat(),
            "username": username,
            "mode": mode,
            "diagnosis_result": result,
        }
        if competitor_id:
            item["competitor_id"] = competitor_id

        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self.table.put_item(Item=item))
        return {
            "username": username,
            "mode": mode,
            "competitor_id": competitor_id or None,
            "diagnosis_result": result,
            "created_at": created_at,
        }

    async def count_access(self, ip_address: str, endpoint: str, since: datetime) -> int:
        """Count access log rows for ip and endpoint created at or after ``since``."""

        def _count():
            from boto3.dynamodb.conditions import Key

            condition = Key("pk").eq(access_pk(ip_address, endpoint)) & Key("sk").gte(
                since.astimezone(UTC).isoformat()
            )
            total = 0
            kwargs = {"KeyConditionExpression": condition, "Select": "COUNT"}
            while True:
                response = self.table.query(**kwargs)
                total += response.get("Count", 0)
                last_key = response.get("LastEvaluatedKey")
                if not last_key:
                    return total
                kwargs["ExclusiveStartKey"] = last_key

        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _count)

    async def record_access(self, ip_address: str, endpoint: str) -> None:
        """Append an access log row."""
        timestamp = datetime.now(UTC).isoformat()
        item = {
            "pk": access_pk(ip_address, endpoint),
            "sk": timestamp,
            "ip_address": ip_address,
            "endpoint": endpoint,
        }
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, lambda: self.table.put_item(Item=item))

    async def health_check(self) -> bool:
        """Check if DynamoDB is accessible.

        Returns:
            True if DynamoDB is healthy, False otherwise.
        """
        try:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, lambda: self.table.table_status)
            return True
        except (AttributeError, RuntimeError) as e:
            logger.warning(f"DynamoDB health check failed: {e}")
            return False
