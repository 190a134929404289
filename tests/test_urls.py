from urllib.parse import parse_qs, urlparse

from adlib_scraper.urls import build_library_url, classify_response_url, parse_page_id_from_url, truncate_url


def test_build_library_url_targets_one_page_sorted_by_impressions():
    url = build_library_url("123456")
    parsed = urlparse(url)
    qs = parse_qs(parsed.query)
    assert parsed.netloc == "www.facebook.com"
    assert parsed.path == "/ads/library/"
    assert qs["view_all_page_id"] == ["123456"]
    assert qs["search_type"] == ["page"]
    assert qs["active_status"] == ["active"]
    assert qs["sort_data[mode]"] == ["total_impressions"]
    assert qs["sort_data[direction]"] == ["desc"]


def test_build_library_url_honours_active_status():
    qs = parse_qs(urlparse(build_library_url("1", active_status="all")).query)
    assert qs["active_status"] == ["all"]


def test_parse_page_id_round_trips_built_url():
    assert parse_page_id_from_url(build_library_url("987654321")) == "987654321"


def test_parse_page_id_rejects_non_numeric_or_missing():
    assert parse_page_id_from_url("https://www.facebook.com/ads/library/?view_all_page_id=abc") is None
    assert parse_page_id_from_url("https://example.com/nope") is None
    assert parse_page_id_from_url("") is None


def test_classify_response_url():
    assert classify_response_url("https://www.facebook.com/api/graphql/") == "api"
    assert classify_response_url("https://www.facebook.com/ajax/bz") == "ajax"
    assert classify_response_url("https://www.facebook.com/ads_library/async/x") == "library"
    assert classify_response_url("https://static.xx.fbcdn.net/rsrc.php/x.js") is None
    assert classify_response_url("") is None


def test_truncate_url_handles_none():
    assert truncate_url("x" * 500) == "x" * 200
    assert truncate_url(None) == ""
