from datetime import datetime, timezone

import pytest

from habeas.judit.normalizer import (
    DEFAULT_PROCESS_STATUS,
    TimelineEvent,
    build_timeline,
    derive_last_update,
    extract_response_list,
    extract_tracking_list,
    find_summary_item,
    normalize_history_lookup,
    normalize_lawsuit,
    normalize_search_results,
    process_identity,
    sort_timeline,
    summary_html,
    summary_text,
)

CNJ = "12345678920238260100"


@pytest.mark.parametrize("container", ["responses", "result", "response_data", "data"])
def test_extract_response_list_accepts_every_container(container):
    assert extract_response_list({container: [{"a": 1}]}) == [{"a": 1}]


def test_extract_response_list_precedence_and_nested_data():
    payload = {"data": [3], "responses": [1], "result": [2]}
    assert extract_response_list(payload) == [1]
    assert extract_response_list({"result": {"data": [9]}}) == [9]


@pytest.mark.parametrize("junk", [None, "texto", 42, [], {"responses": "x"}, {"result": {"data": "y"}}])
def test_extract_response_list_degrades_to_empty(junk):
    assert extract_response_list(junk) == []


def test_build_timeline_sorts_newest_first_with_undated_last():
    payload = {
        "responses": [
            {"response_data": {"date": "2024-01-01", "title": "A"}},
            {"title": "sem data"},
            {"created_at": "2024-05-01T00:00:00Z", "description": "B"},
        ]
    }
    timeline = build_timeline(payload)
    assert [ev.title for ev in timeline] == ["B", "A", "sem data"]
    assert timeline[0].date == datetime(2024, 5, 1, tzinfo=timezone.utc)
    assert timeline[-1].date is None


def test_sort_timeline_is_stable_for_equal_dates():
    same = datetime(2024, 1, 1, tzinfo=timezone.utc)
    events = [TimelineEvent(same, "1"), TimelineEvent(same, "2"), TimelineEvent(None, "3")]
    assert [ev.title for ev in sort_timeline(events)] == ["1", "2", "3"]


def test_build_timeline_never_raises_on_malformed_items():
    timeline = build_timeline({"responses": [None, 5, "x", {"date": "lixo"}, {"date": {"nested": 1}}]})
    assert len(timeline) == 5
    assert all(ev.date is None for ev in timeline)


def test_derive_last_update():
    timeline = build_timeline(
        {
            "data": [
                {"date": "2024-01-01", "title": "Distribuição"},
                {"date": "2024-02-01", "title": "Citação", "description": "Réu citado"},
            ]
        }
    )
    last = derive_last_update(timeline)
    assert last.detail == "Réu citado"
    assert last.next == "Distribuição"
    assert derive_last_update([]) is None


def _lawsuit():
    return {
        "code": CNJ,
        "tribunal_acronym": "TJSP",
        "county": "São Paulo",
        "status": "Ativo",
        "subjects": [{"name": "Cobrança"}, "Juros", {"other": 1}],
        "area": "Cível",
        "amount": 1000.5,
        "parties": [{"name": "Fulano"}, "inválido"],
        "last_step": {"content": "Conclusos", "date": "2024-02-01"},
        "steps": [
            {"id": "s1", "date": "2024-01-01", "content": "Distribuído"},
            {"step_id": "s2", "datetime": "2024-02-01", "summary": "Conclusos"},
            "lixo",
        ],
    }


def test_normalize_lawsuit():
    view = normalize_lawsuit(_lawsuit())
    assert view.number == CNJ
    assert view.tribunal == "TJSP"
    assert view.court == "São Paulo"
    assert view.subjects == ["Cobrança", "Juros"]
    assert view.parties == [{"name": "Fulano"}]
    assert view.last_step == "Conclusos"
    assert [s.id for s in view.steps] == ["s2", "s1"]
    assert view.steps[0].content == "Conclusos"


def test_normalize_lawsuit_unwraps_response_data_and_tolerates_garbage():
    assert normalize_lawsuit({"response_data": _lawsuit()}).number == CNJ
    empty = normalize_lawsuit("nada")
    assert empty.number == ""
    assert empty.steps == []


def test_normalize_search_results():
    payload = {
        "responses": [
            {
                "response_data": {
                    "code": "111",
                    "parties": [{"name": "Cliente A"}],
                    "cover": {"court_name": "1ª Vara"},
                    "last_step": {"summary": "Sentença", "date": "2024-03-01"},
                    "classification": {"value": "Procedimento Comum"},
                    "amount": 10,
                }
            },
            {"response_data": {"tribunal": "TJRJ"}},
        ]
    }
    rows = normalize_search_results(payload, advogado="Dra. Ana")
    assert len(rows) == 1
    row = rows[0]
    assert row.numero == "111"
    assert row.cliente == "Cliente A"
    assert row.advogado == "Dra. Ana"
    assert row.vara == "1ª Vara"
    assert row.ultima_movimentacao == "Sentença"
    assert row.classe == "Procedimento Comum"
    assert row.status == DEFAULT_PROCESS_STATUS


def test_extract_tracking_list_prefers_local_records():
    payload = {"db": [{"tracking_id": "t1"}], "external": {"page_data": [{"tracking_id": "t2"}]}}
    assert extract_tracking_list(payload) == [{"tracking_id": "t1"}]


def test_extract_tracking_list_falls_back_to_external():
    payload = {"data": {"db": [], "external": {"page_data": [{"tracking_id": "t2"}, "x"]}}}
    assert extract_tracking_list(payload) == [{"tracking_id": "t2"}]
    assert extract_tracking_list({"external": {"trackings": [{"id": "t3"}]}}) == [{"id": "t3"}]
    assert extract_tracking_list(None) == []


def _result_with_summaries():
    return {
        "page_data": [
            {"response_type": "lawsuit", "response_data": {"code": CNJ}},
            {"response_type": "summary", "response_data": {"data": ["# Resumo", "Texto <b>forte</b>"]}},
            {"response_type": "summary", "response_data": {"data": "segundo"}},
        ]
    }


def test_first_summary_item_wins():
    item = find_summary_item(_result_with_summaries())
    assert item["response_data"]["data"][0] == "# Resumo"
    assert summary_text(_result_with_summaries()) == "# Resumo\nTexto <b>forte</b>"


def test_summary_html_is_sanitized_markup():
    html = summary_html(_result_with_summaries())
    assert "<h1>Resumo</h1>" in html
    assert "<strong>forte</strong>" in html
    assert summary_html({"page_data": []}) == ""


def test_process_identity():
    payload = {"responses": [{"response_data": {"lawsuit_cnj": CNJ, "subject": "Ação de cobrança"}}]}
    assert process_identity(payload) == (CNJ, "Ação de cobrança")
    assert process_identity({}) == ("", "Processo")


def test_history_lookup_resorts_timeline_and_keeps_backend_last_update():
    payload = {
        "timeline": [
            {"date": "2024-01-01", "title": "Antigo"},
            {"date": "2024-03-01", "title": "Novo"},
        ],
        "lastUpdate": {"date": "2024-03-02", "detail": "do backend", "next": "Prazo"},
        "processNumber": CNJ,
        "status": "completed",
    }
    lookup = normalize_history_lookup(payload)
    assert [ev.title for ev in lookup.timeline] == ["Novo", "Antigo"]
    assert lookup.last_update.detail == "do backend"
    assert lookup.process_number == CNJ
    assert lookup.process_title == "Processo"
    assert lookup.status == "completed"


def test_history_lookup_derives_last_update_when_absent():
    lookup = normalize_history_lookup({"timeline": [{"date": "2024-01-01", "title": "Único"}]})
    assert lookup.last_update.detail == "Único"
    assert lookup.last_update.next == ""
    assert lookup.status == "pending"
