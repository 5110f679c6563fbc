from __future__ import annotations

import asyncio

import httpx
import pytest

from mapdemo.domain.errors import ServiceError
from mapdemo.domain.geometry import Coordinate, Region
from mapdemo.services.autocomplete import (
    PlaceAutocompleteService,
    _fetch_google_completions,
    photon_candidate,
)
from mapdemo.services.models import CompletionCandidate


CALGARY = Region.around(Coordinate(51.0455, -114.0729), 30000)
EDMONTON = Region.around(Coordinate(53.5461, -113.4938), 30000)


def _service(completer, **kwargs) -> tuple[PlaceAutocompleteService, list, list]:
    service = PlaceAutocompleteService(completer, debounce_seconds=0, **kwargs)
    published: list[list[CompletionCandidate]] = []
    errors: list[Exception] = []
    service.subscribe(published.append, errors.append)
    return service, published, errors


@pytest.mark.asyncio
async def test_out_of_order_results_are_dropped(controlled_call, run_pending):
    completer = controlled_call()
    service, published, _ = _service(completer, region=CALGARY)

    service.set_query("ca")
    service.set_query("calg")
    await run_pending()

    completer.resolve(1, [CompletionCandidate("Calgary", "Alberta")])
    await run_pending()
    completer.resolve(0, [CompletionCandidate("Canmore", "Alberta")])
    await run_pending()

    assert published == [[CompletionCandidate("Calgary", "Alberta")]]
    assert service.results == [CompletionCandidate("Calgary", "Alberta")]


@pytest.mark.asyncio
async def test_empty_query_clears_without_provider_call(controlled_call, run_pending):
    completer = controlled_call()
    service, published, _ = _service(completer)

    service.set_query("calg")
    await run_pending()
    assert service.set_query("  ") is None

    completer.resolve(0, [CompletionCandidate("Calgary", "Alberta")])
    await run_pending()

    assert len(completer.calls) == 1
    assert published == [[]]
    assert service.results == []


@pytest.mark.asyncio
async def test_results_keep_provider_order_and_limit(controlled_call, run_pending):
    completer = controlled_call()
    service, published, _ = _service(completer, limit=2)

    task = service.set_query("ban")
    await run_pending()
    assert completer.args(0) == ("ban", None, 2)
    completer.resolve(
        0,
        [
            CompletionCandidate("Banff", "Alberta"),
            CompletionCandidate("Bankview", "Calgary"),
            CompletionCandidate("Bangor", "Maine"),
        ],
    )
    await task

    assert [item.title for item in published[-1]] == ["Banff", "Bankview"]


@pytest.mark.asyncio
async def test_region_change_requeries_only_with_active_query(
    controlled_call, run_pending
):
    completer = controlled_call()
    service, _, _ = _service(completer)

    assert service.set_region(CALGARY) is None
    assert completer.calls == []

    service.set_query("main st")
    await run_pending()
    service.set_region(EDMONTON)
    await run_pending()

    assert [call[0][1] for call in completer.calls] == [CALGARY, EDMONTON]
    assert service.region == EDMONTON


@pytest.mark.asyncio
async def test_provider_error_is_published(controlled_call, run_pending):
    completer = controlled_call()
    service, published, errors = _service(completer)

    task = service.set_query("calg")
    await run_pending()
    completer.fail(0, ServiceError("photon unavailable"))
    await task

    assert published == []
    assert len(errors) == 1
    assert isinstance(errors[0], ServiceError)


@pytest.mark.asyncio
async def test_debounce_skips_superseded_keystrokes(controlled_call):
    completer = controlled_call()
    service = PlaceAutocompleteService(completer, debounce_seconds=0.01)

    first = service.set_query("c")
    second = service.set_query("ca")
    await first
    await asyncio.sleep(0.05)

    assert [call[0][0] for call in completer.calls] == ["ca"]
    completer.resolve(0, [CompletionCandidate("Calgary", "Alberta")])
    await second
    assert service.results == [CompletionCandidate("Calgary", "Alberta")]


def test_photon_candidate_formats_title_and_subtitle():
    candidate = photon_candidate(
        {
            "name": "Calgary Tower",
            "street": "9 Avenue SW",
            "city": "Calgary",
            "state": "Alberta",
            "country": "Canada",
        }
    )

    assert candidate == CompletionCandidate(
        "Calgary Tower", "9 Avenue SW, Calgary, Alberta, Canada"
    )


def test_photon_candidate_falls_back_to_street_address():
    candidate = photon_candidate(
        {"housenumber": "2500", "street": "University Dr NW", "city": "Calgary"}
    )

    assert candidate == CompletionCandidate("2500 University Dr NW", "Calgary")
    assert photon_candidate({"city": "Calgary"}) is None


@pytest.mark.asyncio
async def test_google_completions_parse_predictions():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["input"] == "calg"
        assert request.url.params["location"].startswith("51.0455")
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "predictions": [
                    {
                        "description": "Calgary, AB, Canada",
                        "structured_formatting": {
                            "main_text": "Calgary",
                            "secondary_text": "AB, Canada",
                        },
                    }
                ],
            },
        )

    candidates = await _fetch_google_completions(
        "calg",
        CALGARY,
        5,
        api_key="test-key",
        timeout=1.0,
        transport=httpx.MockTransport(handler),
    )

    assert candidates == [CompletionCandidate("Calgary", "AB, Canada")]


@pytest.mark.asyncio
async def test_google_completions_raise_on_denied_status():
    transport = httpx.MockTransport(
        lambda _request: httpx.Response(
            200, json={"status": "REQUEST_DENIED", "error_message": "bad key"}
        )
    )

    with pytest.raises(ServiceError, match="bad key"):
        await _fetch_google_completions(
            "calg", None, 5, api_key="test-key", timeout=1.0, transport=transport
        )


@pytest.mark.asyncio
async def test_google_completions_html_body_is_service_error():
    transport = httpx.MockTransport(
        lambda _request: httpx.Response(200, text="<html>Bad gateway</html>")
    )

    with pytest.raises(ServiceError, match="unreadable"):
        await _fetch_google_completions(
            "calg", None, 5, api_key="test-key", timeout=1.0, transport=transport
        )


@pytest.mark.asyncio
async def test_unreadable_google_response_reaches_error_listeners():
    transport = httpx.MockTransport(
        lambda _request: httpx.Response(200, text="not json")
    )

    async def completer(text, region, limit):
        return await _fetch_google_completions(
            text, region, limit, api_key="test-key", timeout=1.0, transport=transport
        )

    service, published, errors = _service(completer)

    await service.set_query("calg")

    assert len(errors) == 1
    assert isinstance(errors[0], ServiceError)
    assert published == []
