"""Unit tests for link scoring."""

import pytest

from corpus_builder.crawler.link_scorer import INVALID_URL_SCORE, score_link


pytestmark = pytest.mark.unit

ROOT = "https://a.com/"


class TestScoreLink:
    """Static priority of candidate links."""

    def test_documentation_beats_about(self):
        assert score_link("https://a.com/docs/x", ROOT) > score_link("https://a.com/about", ROOT)

    def test_login_scores_below_about(self):
        assert score_link("https://a.com/login", ROOT) < score_link("https://a.com/about", ROOT)

    def test_exact_scores_from_root(self):
        assert score_link("https://a.com/docs/x", ROOT) == 90
        assert score_link("https://a.com/about", ROOT) == 75
        assert score_link("https://a.com/login", ROOT) == 45

    def test_external_link_loses_same_origin_bonus(self):
        assert score_link("https://b.com/docs/x", ROOT) == 70

    def test_same_section_bonus(self):
        # +20 origin, +10 section, +15 docs, +5 shallow
        assert score_link("https://a.com/docs/next", "https://a.com/docs/current") == 100
        assert score_link("https://a.com/blog/next", "https://a.com/docs/current") == 75

    def test_same_page_anchor_is_penalized(self):
        score = score_link("https://a.com/guide/intro#setup", "https://a.com/guide/intro")
        assert score == 60

    def test_binary_extension_is_penalized(self):
        assert score_link("https://a.com/files/archive.zip", ROOT) == 25

    def test_document_extension_bonus(self):
        assert score_link("https://a.com/notes/readme.md", ROOT) == 80

    def test_many_query_params_are_penalized(self):
        assert score_link("https://a.com/about?a=1&b=2&c=3&d=4", ROOT) == 60

    def test_long_url_is_penalized(self):
        link = "https://a.com/about?x=" + "y" * 200
        assert score_link(link, ROOT) == 65

    def test_clamped_to_zero(self):
        link = "https://b.com/login/a/b/c/d.zip?a=1&b=2&c=3&d=4"
        assert score_link(link, ROOT) == 0

    def test_clamped_to_hundred(self):
        assert score_link("https://a.com/docs/guide.html", "https://a.com/docs/index.html") == 100

    @pytest.mark.parametrize(
        ("link", "source"),
        [
            ("not a url", ROOT),
            ("/docs/x", ROOT),
            ("https://a.com/docs", "garbage"),
            ("http://[::1", ROOT),
        ],
    )
    def test_invalid_urls_score_exactly_ten(self, link, source):
        assert score_link(link, source) == INVALID_URL_SCORE == 10
