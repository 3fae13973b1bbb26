"""Unit tests for HTML markup signal detection."""

from app.integrations.page_signals import detect_page_signals

_HTML = """
<html>
<head>
  <meta name="author" content="Jane Doe">
  <script type="application/ld+json">
    {"@context": "https://schema.org", "@graph": [
      {"@type": "Organization", "name": "Acme"},
      {"@type": ["WebSite", "WebPage"]}
    ]}
  </script>
  <script type="application/ld+json">{ not json </script>
</head>
<body>
  <div itemscope itemtype="https://schema.org/Product">Widget</div>
  <h2>Frequently Asked Questions</h2>
  <ul><li>One</li></ul>
  <table><tr><td>Plan</td></tr></table>
  <time datetime="2025-01-01">Jan 1</time>
  <a href="https://www.acme.com/pricing">Pricing</a>
  <a href="https://acme.com/about">About</a>
  <a href="https://en.wikipedia.org/wiki/Acme">Wikipedia</a>
  <a href="https://g2.com/acme">G2</a>
  <a href="/relative">Relative</a>
  <a href="mailto:hi@acme.com">Mail</a>
</body>
</html>
"""


def test_detects_schema_types_from_json_ld_and_microdata() -> None:
    signals = detect_page_signals(_HTML, page_url="https://www.acme.com/")

    assert signals.schema_types == ["Organization", "WebSite", "WebPage", "Product"]
    assert signals.has_schema is True


def test_detects_content_markup() -> None:
    signals = detect_page_signals(_HTML, page_url="https://acme.com")

    assert signals.has_faq_markup is True
    assert signals.has_lists is True
    assert signals.has_table_tags is True
    assert signals.has_author_markup is True
    assert signals.has_date_markup is True


def test_counts_only_external_http_links() -> None:
    signals = detect_page_signals(_HTML, page_url="https://acme.com")

    assert signals.external_link_count == 2


def test_empty_html_yields_no_signals() -> None:
    signals = detect_page_signals("")

    assert signals.schema_types == []
    assert signals.has_schema is False
    assert signals.external_link_count == 0


def test_faq_page_schema_counts_as_faq_markup() -> None:
    html = '<script type="application/ld+json">{"@type": "FAQPage"}</script><p>Hi</p>'

    signals = detect_page_signals(html)

    assert signals.has_faq_markup is True
    assert signals.has_lists is False
