"""Tests for bulk operation API endpoints."""

from httpx import AsyncClient

from deckvault.models.checkpoint import (
    ImportCheckpoint,
    ImportStage,
    OperationKind,
    PendingCard,
)
from deckvault.services.bulk_operations import BulkOperationController


class TestImportEndpoint:
    async def test_import_deck_list(self, client: AsyncClient, sample_deck_text: str) -> None:
        """An import reports counts and its progress history."""
        response = await client.post(
            "/operations/import", json={"container_name": "Burn", "text": sample_deck_text}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["kind"] == "import"
        assert data["status"] == "complete"
        assert data["allocated"] == 4
        assert data["wishlisted"] == 0
        assert data["degraded"] is False
        assert data["progress"][-1]["status"] == "complete"
        assert data["progress"][-1]["percent"] == 100

        deck = (await client.get(f"/containers/{data['container_id']}")).json()
        assert deck["stats"]["total_cards"] == 4
        assert deck["stats"]["sideboard_cards"] == 1

    async def test_import_into_binder(self, client: AsyncClient, sample_deck_text: str) -> None:
        response = await client.post(
            "/operations/import",
            json={"container_name": "Trades", "text": sample_deck_text, "kind": "binder"},
        )

        binder = (await client.get(f"/containers/{response.json()['container_id']}")).json()
        assert binder["kind"] == "binder"
        assert binder["stats"]["sideboard_cards"] == 0

    async def test_blank_container_name_is_fatal(self, client: AsyncClient) -> None:
        """A container that cannot be created is an explained fatal failure."""
        response = await client.post(
            "/operations/import", json={"container_name": "  ", "text": "1 Island"}
        )

        assert response.status_code == 422
        data = response.json()
        assert data["outcome"] == "known_failure"
        assert data["failure"]["kind"] == "fatal_stage"

    async def test_busy(self, client: AsyncClient, controller: BulkOperationController) -> None:
        controller.guard.acquire(OperationKind.IMPORT)

        response = await client.post(
            "/operations/import", json={"container_name": "Burn", "text": "1 Island"}
        )

        data = response.json()
        assert data["status"] == "busy"
        assert data["failure_kind"] == "operation_busy"


class TestDeleteEndpoint:
    async def test_delete_with_cards(self, client: AsyncClient, sample_deck_text: str) -> None:
        imported = await client.post(
            "/operations/import", json={"container_name": "Burn", "text": sample_deck_text}
        )
        container_id = imported.json()["container_id"]

        response = await client.post(
            "/operations/delete", json={"container_id": container_id, "delete_cards": True}
        )

        data = response.json()
        assert data["status"] == "complete"
        assert data["succeeded"] == 3
        assert (await client.get(f"/containers/{container_id}")).status_code == 404
        assert (await client.get("/cards")).json() == []

    async def test_missing_container(self, client: AsyncClient) -> None:
        response = await client.post("/operations/delete", json={"container_id": 404})

        assert response.status_code == 422
        assert response.json()["failure"]["kind"] == "fatal_stage"


class TestPendingAndResume:
    async def test_pending_resume_and_abandon(
        self, client: AsyncClient, controller: BulkOperationController
    ) -> None:
        """An interrupted import is listed, resumed, and then gone."""
        created = await client.post("/containers", json={"name": "Half Done"})
        container_id = created.json()["id"]
        await controller.checkpoints.write(
            OperationKind.IMPORT,
            ImportCheckpoint(
                container_id=container_id,
                container_name="Half Done",
                stage=ImportStage.PROCESSING,
                total_cards=1,
                pending_cards=[PendingCard(name="Counterspell", quantity=2)],
            ),
        )

        pending = (await client.get("/operations/pending")).json()
        assert pending == [
            {
                "kind": "import",
                "container_id": container_id,
                "container_name": "Half Done",
                "stage": "processing",
                "failed_stage": None,
                "error": None,
                "progress": "0/1 processed",
            }
        ]

        resumed = (await client.post("/operations/import/resume")).json()
        assert resumed["status"] == "complete"
        assert resumed["allocated"] == 2
        assert (await client.get("/operations/pending")).json() == []

        abandoned = (await client.delete("/operations/import")).json()
        assert abandoned == {"kind": "import", "abandoned": False}

    async def test_nothing_to_resume(self, client: AsyncClient) -> None:
        response = await client.post("/operations/delete/resume")

        assert response.json()["status"] == "nothing_to_resume"

    async def test_unknown_kind(self, client: AsyncClient) -> None:
        response = await client.post("/operations/rename/resume")

        assert response.status_code == 422
