"""Unit tests for on-page SEO extraction."""

from site_auditor.audit.extractors.seo import extract_seo_data


FULL_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <title>  Widgets and
     Gadgets  </title>
  <meta name="Description" content="Everything about widgets.">
  <meta name="robots" content="index, follow">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta property="og:title" content="Widgets">
  <meta property="og:type" content="website">
  <meta name="twitter:card" content="summary">
  <link rel="canonical" href="/widgets">
  <link rel="alternate" hreflang="de" href="/de/widgets">
  <link rel="stylesheet" href="/site.css">
  <script src="/app.js"></script>
  <script type="application/ld+json">{"@type": "Product", "name": "Widget"}</script>
  <script type="application/ld+json">{not json</script>
</head>
<body>
  <h1>Widgets</h1>
  <h2>Blue widgets</h2>
  <h3>Sizes</h3>
  <p>Our widgets are the best widgets.</p>
  <img src="/hero.png" alt="A blue widget">
  <img data-src="/lazy.png" alt="  ">
  <a href="/about">About   us</a>
  <a href="/about#team">Team</a>
  <a href="https://other.org/page" rel="nofollow noopener">Partner</a>
  <a href="mailto:hello@example.com">Mail</a>
  <a href="javascript:void(0)">Menu</a>
  <script>var hidden = "not content";</script>
  <style>.x { color: red; }</style>
</body>
</html>"""


class TestExtractSeoData:
    """Test cases for extract_seo_data."""

    def test_head_signals(self, rendered_page):
        data = extract_seo_data(rendered_page(FULL_PAGE, url="https://example.com/widgets"))

        assert data.title == "Widgets and Gadgets"
        assert data.meta_description == "Everything about widgets."
        assert data.canonical_url == "https://example.com/widgets"
        assert data.meta_robots == "index, follow"
        assert data.is_mobile_friendly
        assert not data.is_noindex
        assert data.open_graph == {"title": "Widgets", "type": "website"}
        assert data.twitter_card == {"card": "summary"}
        assert data.hreflang[0].hreflang == "de"
        assert data.hreflang[0].href == "https://example.com/de/widgets"
        assert data.script_count == 1
        assert data.stylesheet_count == 1

    def test_structured_data_skips_invalid_blocks(self, rendered_page):
        data = extract_seo_data(rendered_page(FULL_PAGE))

        assert data.structured_data == [{"@type": "Product", "name": "Widget"}]
        assert data.has_structured_data

    def test_headings_and_images(self, rendered_page):
        data = extract_seo_data(rendered_page(FULL_PAGE))

        assert data.h1 == ["Widgets"]
        assert data.h2 == ["Blue widgets"]
        assert data.h3 == ["Sizes"]
        assert [image.src for image in data.images] == ["https://example.com/hero.png", "https://example.com/lazy.png"]
        assert data.images[0].has_alt
        assert not data.images[1].has_alt
        assert len(data.images_missing_alt) == 1

    def test_links_are_resolved_deduplicated_and_split(self, rendered_page):
        data = extract_seo_data(rendered_page(FULL_PAGE))

        assert [link.url for link in data.internal_links] == ["https://example.com/about"]
        assert data.internal_links[0].text == "About us"
        assert [link.url for link in data.external_links] == ["https://other.org/page"]
        assert data.external_links[0].nofollow
        assert not data.external_links[0].is_internal

    def test_links_split_against_final_url(self, rendered_page):
        page = rendered_page('<a href="/next">n</a><a href="https://example.com/x">x</a>',
                             url="https://example.com/")
        page.final_url = "https://www.example.com/"
        data = extract_seo_data(page)

        assert [link.url for link in data.internal_links] == ["https://www.example.com/next"]
        assert [link.url for link in data.external_links] == ["https://example.com/x"]

    def test_visible_text_excludes_scripts_and_styles(self, rendered_page):
        data = extract_seo_data(rendered_page(FULL_PAGE))

        assert "not content" not in data.text_content
        assert "color" not in data.text_content
        assert "Our widgets are the best widgets." in data.text_content
        assert data.word_count > 10

    def test_reported_title_wins(self, rendered_page):
        data = extract_seo_data(rendered_page(FULL_PAGE, title="Rendered Title"))
        assert data.title == "Rendered Title"

    def test_noindex_from_header(self, rendered_page):
        data = extract_seo_data(rendered_page("<html><body>x</body></html>",
                                              headers={"x-robots-tag": "noindex, nofollow"}))
        assert data.is_noindex
        assert data.x_robots_tag == "noindex, nofollow"

    def test_empty_document(self, rendered_page):
        data = extract_seo_data(rendered_page(""))

        assert data.title == ""
        assert data.meta_description == ""
        assert data.canonical_url is None
        assert data.h1 == []
        assert data.internal_links == []
        assert data.word_count == 0
        assert not data.is_mobile_friendly
