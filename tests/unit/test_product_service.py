"""
Unit tests for ProductService (catalogue writes schedule index jobs)
"""

import pytest
from structlog.testing import capture_logs

from app.core.exceptions import ProductNotFoundError, QueueError
from app.core.logging import get_metric, reset_metrics
from app.models import ComponentType
from app.queue.schemas import IndexAction, IndexJob
from app.schemas.product import ProductCreate, ProductUpdate
from app.services.product_service import ProductService


class _RecordingQueue:
    def __init__(self, fail: bool = False):
        self.jobs: list[IndexJob] = []
        self.fail = fail

    def enqueue(self, job: IndexJob) -> IndexJob:
        if self.fail:
            raise QueueError("Index queue is stopped")
        self.jobs.append(job)
        return job


@pytest.fixture
def queue() -> _RecordingQueue:
    return _RecordingQueue()


@pytest.fixture
def product_service(async_db_session, queue) -> ProductService:
    return ProductService(session=async_db_session, index_queue=queue)


def _payload(**overrides) -> ProductCreate:
    values = dict(
        name="Samsung 990 Pro 2TB",
        description="PCIe 4.0 NVMe SSD",
        price=179.0,
        component_type=ComponentType.SSD,
        category_id="storage",
        image_urls=["https://cdn.example.com/990pro.jpg", "  "],
    )
    values.update(overrides)
    return ProductCreate(**values)


@pytest.mark.asyncio
async def test_create_product_schedules_index_job(product_service, queue) -> None:
    created = await product_service.create_product(_payload())

    assert created.id
    assert created.image_urls == ["https://cdn.example.com/990pro.jpg"]
    assert len(queue.jobs) == 1
    job = queue.jobs[0]
    assert job.action is IndexAction.INDEX
    assert job.product_id == created.id
    assert job.product.name == "Samsung 990 Pro 2TB"
    assert job.product.component_type is ComponentType.SSD


@pytest.mark.asyncio
async def test_create_product_keeps_explicit_id(product_service) -> None:
    created = await product_service.create_product(_payload(id="ssd-990"))

    assert created.id == "ssd-990"
    assert (await product_service.get_product("ssd-990")).name == "Samsung 990 Pro 2TB"


@pytest.mark.asyncio
async def test_update_product_reindexes_with_new_snapshot(product_service, queue) -> None:
    created = await product_service.create_product(_payload())

    updated = await product_service.update_product(
        created.id, ProductUpdate(description="Fast NVMe drive", price=159.0)
    )

    assert updated.description == "Fast NVMe drive"
    assert updated.price == 159.0
    assert updated.name == "Samsung 990 Pro 2TB"
    assert [job.action for job in queue.jobs] == [IndexAction.INDEX, IndexAction.INDEX]
    assert queue.jobs[-1].product.description == "Fast NVMe drive"


@pytest.mark.asyncio
async def test_delete_product_schedules_deindex(product_service, queue) -> None:
    created = await product_service.create_product(_payload())

    await product_service.delete_product(created.id)

    assert queue.jobs[-1].action is IndexAction.DEINDEX
    assert queue.jobs[-1].product_id == created.id
    with pytest.raises(ProductNotFoundError):
        await product_service.get_product(created.id)


@pytest.mark.asyncio
async def test_unknown_product_raises(product_service) -> None:
    with pytest.raises(ProductNotFoundError):
        await product_service.update_product("missing", ProductUpdate(price=1.0))
    with pytest.raises(ProductNotFoundError):
        await product_service.delete_product("missing")


@pytest.mark.asyncio
async def test_enqueue_failure_does_not_fail_the_write(async_db_session) -> None:
    reset_metrics()
    service = ProductService(session=async_db_session, index_queue=_RecordingQueue(fail=True))

    created = await service.create_product(_payload())

    assert (await service.get_product(created.id)).id == created.id
    assert get_metric("index_job_enqueue_failure", action="INDEX") == 1


@pytest.mark.asyncio
async def test_enqueue_failure_is_logged_with_product_context(async_db_session) -> None:
    service = ProductService(session=async_db_session, index_queue=_RecordingQueue(fail=True))

    with capture_logs() as logs:
        created = await service.create_product(_payload())

    events = {entry["event"]: entry for entry in logs}
    assert events["product_created"]["product_id"] == created.id
    failure = events["index_job_enqueue_failed"]
    assert failure["log_level"] == "error"
    assert failure["product_id"] == created.id
    assert failure["action"] == "INDEX"


@pytest.mark.asyncio
async def test_list_products_paginates(product_service) -> None:
    for index in range(3):
        await product_service.create_product(_payload(id=f"p{index}", name=f"Product {index}"))

    page = await product_service.list_products(page=2, page_size=2)

    assert page.total == 3
    assert [item.id for item in page.items] == ["p2"]
