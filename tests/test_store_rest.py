"""
RestKnowledgeStore without hitting the network.

`requests.request` is patched; each test inspects what would have been sent.
"""

from unittest.mock import Mock, patch

import pytest
import requests

from medkb.store import DIAGNOSES, SYMPTOMS, RestKnowledgeStore, StoreReadError, StoreWriteError


@pytest.fixture
def rest_store() -> RestKnowledgeStore:
    return RestKnowledgeStore("https://kb.example.org", api_key="secret", timeout=4)


def _response(payload=None):
    return Mock(status_code=200, json=lambda: payload, raise_for_status=lambda: None)


def test_select_builds_postgrest_query(rest_store):
    with patch("medkb.store.requests.request", return_value=_response([{"id": 1}])) as request:
        rows = rest_store.select(
            DIAGNOSES,
            filters={"user_id": "u-1", "disease_id": [3, 4], "ai_recommendation": None},
            order_by="-created_at",
            limit=3,
        )

    assert rows == [{"id": 1}]
    args, kwargs = request.call_args
    assert args == ("GET", "https://kb.example.org/rest/v1/diagnoses")
    assert kwargs["params"] == {
        "select": "*",
        "user_id": "eq.u-1",
        "disease_id": "in.(3,4)",
        "ai_recommendation": "is.null",
        "order": "created_at.desc",
        "limit": "3",
    }
    assert kwargs["timeout"] == 4
    assert kwargs["headers"]["apikey"] == "secret"
    assert kwargs["headers"]["Authorization"] == "Bearer secret"


def test_select_defaults_to_id_order_and_boolean_literals(rest_store):
    with patch("medkb.store.requests.request", return_value=_response([])) as request:
        rest_store.select("medication_reminders", filters={"is_active": True})
    params = request.call_args.kwargs["params"]
    assert params["is_active"] == "eq.true"
    assert params["order"] == "id.asc"


def test_empty_in_filter_skips_the_request(rest_store):
    with patch("medkb.store.requests.request") as request:
        assert rest_store.select(SYMPTOMS, filters={"id": []}) == []
    request.assert_not_called()


def test_upsert_merges_on_conflict_key(rest_store):
    with patch("medkb.store.requests.request", return_value=_response()) as request:
        result = rest_store.upsert(SYMPTOMS, [{"name": "chills"}, {"name": "cough"}], "name")

    assert result.written == 2
    args, kwargs = request.call_args
    assert args[0] == "POST"
    assert kwargs["params"] == {"on_conflict": "name"}
    assert kwargs["json"] == [{"name": "chills"}, {"name": "cough"}]
    assert kwargs["headers"]["Prefer"] == "resolution=merge-duplicates,return=minimal"


def test_insert_error_is_a_write_error(rest_store):
    failing = Mock(raise_for_status=Mock(side_effect=requests.HTTPError("409 Conflict")))
    with patch("medkb.store.requests.request", return_value=failing):
        with pytest.raises(StoreWriteError, match="409"):
            rest_store.insert(SYMPTOMS, [{"name": "chills"}])


def test_connection_failure_is_a_read_error(rest_store):
    with patch("medkb.store.requests.request", side_effect=requests.ConnectionError("unreachable")):
        with pytest.raises(StoreReadError):
            rest_store.select(SYMPTOMS)


def test_non_list_payload_is_a_read_error(rest_store):
    with patch("medkb.store.requests.request", return_value=_response({"message": "oops"})):
        with pytest.raises(StoreReadError):
            rest_store.select(SYMPTOMS)


def test_empty_writes_send_nothing(rest_store):
    with patch("medkb.store.requests.request") as request:
        assert rest_store.insert(SYMPTOMS, []).written == 0
        assert rest_store.upsert(SYMPTOMS, [], "name").written == 0
    request.assert_not_called()
