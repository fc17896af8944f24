import asyncio

import pytest

from dreamhouse import metrics
from dreamhouse.pipeline.fanout import generate_room_images
from dreamhouse.pipeline.models import ImageState, Project

from conftest import AREAS, make_concept, make_preferences


def _skeleton_designs():
    return Project.from_concept("project-fanout", make_preferences(), make_concept()).designs


@pytest.mark.asyncio
async def test_order_preserved_when_completions_are_reversed(client):
    # Last area finishes first, first area finishes last.
    for i, area in enumerate(AREAS):
        client.image_delays[area] = (len(AREAS) - i) * 0.01
    completion_order = []

    designs = await generate_room_images(
        client, _skeleton_designs(), make_preferences(),
        on_progress=lambda p: completion_order.append(p.area),
    )

    assert [d.area for d in designs] == AREAS
    assert completion_order == list(reversed(AREAS))
    assert all(d.image_state == ImageState.READY for d in designs)


@pytest.mark.asyncio
async def test_one_failure_is_isolated(client, service_error):
    client.image_failures["Kitchen"] = service_error

    designs = await generate_room_images(client, _skeleton_designs(), make_preferences())

    assert len(designs) == len(AREAS)
    kitchen = designs[AREAS.index("Kitchen")]
    assert kitchen.image_state == ImageState.FAILED
    assert kitchen.description == "Kitchen description"
    assert kitchen.budget_estimate is not None
    assert "500" in kitchen.image_error

    others = [d for d in designs if d.area != "Kitchen"]
    assert all(d.image_state == ImageState.READY for d in others)
    assert metrics.get_snapshot()["counters"] == {"images.ready": 6, "images.failed": 1}
    assert metrics.get_snapshot()["outcomes"]["images"]["success_rate"] == 85.7


@pytest.mark.asyncio
async def test_all_requests_dispatched_before_any_completes(client):
    gate = asyncio.Event()
    for area in AREAS:
        client.image_gates[area] = gate

    task = asyncio.create_task(generate_room_images(client, _skeleton_designs(), make_preferences()))
    await asyncio.sleep(0.01)

    assert len(client.calls_named("generate_image")) == len(AREAS)
    assert not task.done()

    gate.set()
    designs = await task
    assert len(designs) == len(AREAS)


@pytest.mark.asyncio
async def test_progress_counts_advance_once_per_area(client, service_error):
    client.image_failures["Foyer"] = service_error
    seen = []

    async def on_progress(progress):
        seen.append((progress.completed, progress.total, progress.marker))

    await generate_room_images(client, _skeleton_designs(), make_preferences(), on_progress=on_progress)

    assert [c for c, _, _ in seen] == list(range(1, len(AREAS) + 1))
    assert seen[-1][2] == f"{len(AREAS)} of {len(AREAS)}"


@pytest.mark.asyncio
async def test_failing_progress_callback_does_not_break_fanout(client):
    def on_progress(progress):
        raise RuntimeError("listener blew up")

    designs = await generate_room_images(client, _skeleton_designs(), make_preferences(), on_progress=on_progress)

    assert all(d.image_state == ImageState.READY for d in designs)
