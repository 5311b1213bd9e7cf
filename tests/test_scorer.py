"""
Tests for page scoring and content extraction (no network).
"""

from src.matching.models import CandidateKind, MatchTarget
from src.matching.scorer import (
    evaluate_direct_page,
    extract_description,
    extract_images,
    extract_price,
    extract_ratings,
    extract_region,
    parse_html,
    score_image,
    score_links,
    score_page,
    select_image,
)

PAGE_URL = "http://prowine.test/?wine=chateau-exemple-2020"

LABEL_AND_LOGO = """
<img src="/theme/icons/logo.png" width="40" height="40" alt="">
<img src="/assets/uploads/wine-label.jpg" width="200" height="800" alt="">
"""

WINE_PAGE = f"""
<html><head><title>Château Exemple 2020 | ProWine</title></head>
<body>
  <h1>Château Exemple 2020</h1>
  {LABEL_AND_LOGO}
  <div class="wine-meta">產區：Bordeaux 波爾多 | 品酩價：1,280元</div>
  <h3>酒品介紹</h3>
  <p>深邃的紅寶石色澤，黑醋栗與雪松香氣。</p>
  <p>Decanter: 95 / James Suckling 93分</p>
  <h3>得獎紀錄</h3>
  <p>Not part of the description</p>
</body></html>
"""


class TestDirectPage:
    def test_matching_heading_is_accepted(self, wine_target):
        result = evaluate_direct_page(parse_html(WINE_PAGE), wine_target)

        assert result.accepted
        assert result.keyword_hits == 2
        assert result.prefix_matched
        assert result.heading == "Château Exemple 2020"

    def test_unrelated_heading_is_rejected_despite_image(self, wine_target):
        """Zero keyword overlap is a NoMatch even with a plausible product image."""
        html = f"<html><body><h1>Unrelated Product X</h1>{LABEL_AND_LOGO}</body></html>"

        page = evaluate_direct_page(parse_html(html), wine_target)
        result = score_page(html, PAGE_URL, CandidateKind.DIRECT_PAGE, wine_target)

        assert not page.accepted
        assert page.keyword_hits == 0
        assert result.match is None
        assert "Unrelated Product X" in result.reason

    def test_single_keyword_without_prefix_is_rejected(self):
        target = MatchTarget(entity_id="w1", name_en="Lusty Reserve Cabernet")
        html = "<html><body><h1>Opus One Cabernet</h1></body></html>"

        assert not evaluate_direct_page(parse_html(html), target).accepted

    def test_chinese_name_matches_by_prefix(self):
        target = MatchTarget(entity_id="w1", name_zh="樂事酒莊卡本內")
        html = "<html><body><h1>樂事酒莊卡本內 2019</h1></body></html>"

        result = evaluate_direct_page(parse_html(html), target)

        assert result.prefix_matched
        assert result.accepted

    def test_higher_overlap_scores_higher(self):
        target = MatchTarget(entity_id="w1", name_en="Bodega Ejemplo Reserva Especial")
        weak = parse_html("<h1>Bodega Ejemplo</h1>")
        strong = parse_html("<h1>Bodega Ejemplo Reserva Especial</h1>")

        assert evaluate_direct_page(strong, target).score > evaluate_direct_page(weak, target).score


class TestImages:
    def test_label_chosen_over_logo(self, wine_target):
        images = extract_images(parse_html(LABEL_AND_LOGO), PAGE_URL, wine_target)

        assert [image.url for image in images] == ["http://prowine.test/assets/uploads/wine-label.jpg"]
        assert select_image(images) == "http://prowine.test/assets/uploads/wine-label.jpg"

    def test_logo_path_is_never_scored(self):
        assert score_image("http://prowine.test/wp-content/uploads/logo-main.jpg", "", 800, 800, []) is None

    def test_images_outside_uploads_are_ignored(self):
        assert score_image("http://prowine.test/static/bottle.jpg", "", 800, 800, []) is None

    def test_alt_exclusion(self):
        assert score_image("http://prowine.test/wp-content/uploads/a.jpg", "Brand mark", None, None, []) is None

    def test_slug_and_size_bonuses(self):
        url = "http://prowine.test/wp-content/uploads/chateau-exemple.jpg"

        plain = score_image(url, "", None, None, [])
        with_slug = score_image(url, "", None, None, ["chateau-exemple"])
        large = score_image(url, "", 600, 900, ["chateau-exemple"])
        small = score_image(url, "", 50, 60, [])

        assert plain == 120
        assert with_slug == 170
        assert large == 185
        assert small == 70

    def test_small_image_below_threshold_is_not_selected(self, wine_target):
        html = '<img src="/wp-content/uploads/thumb-a.gif" width="20" height="20">'
        images = extract_images(parse_html(html), PAGE_URL, wine_target)

        assert images
        assert select_image(images) is None

    def test_lazy_loaded_source(self, wine_target):
        html = '<img src="data:image/gif;base64,R0lG" data-src="/wp-content/uploads/bottle.png">'
        images = extract_images(parse_html(html), PAGE_URL, wine_target)

        assert images[0].url == "http://prowine.test/wp-content/uploads/bottle.png"


class TestTextFields:
    def test_description_between_marker_and_next_heading(self):
        text = extract_description(parse_html(WINE_PAGE))

        assert text.startswith("深邃的紅寶石色澤")
        assert "Decanter: 95" in text
        assert "Not part of the description" not in text

    def test_description_falls_back_to_selector(self):
        html = '<div class="entry-content"><p>Elegant and fresh.</p></div>'

        assert extract_description(parse_html(html)) == "Elegant and fresh."

    def test_description_falls_back_to_text_after_marker(self):
        html = "<div><p>酒品介紹：果香豐富</p></div>"

        assert extract_description(parse_html(html)) == "果香豐富"

    def test_description_absent(self):
        assert extract_description(parse_html("<p>nothing here</p>")) is None

    def test_description_truncated(self, matching_config):
        matching_config.description_max_length = 10
        html = '<div class="entry-content">' + "x" * 50 + "</div>"

        assert len(extract_description(parse_html(html), matching_config)) == 10

    def test_price(self):
        assert extract_price("品酩價：840元") == 840
        assert extract_price("品酩價: 1,280 元") == 1280
        assert extract_price("售價 840") is None

    def test_ratings(self):
        ratings = extract_ratings("Decanter: 95 / James Suckling 93分 / Wine Spectator: 12")

        assert ratings == {"Decanter": 95, "James Suckling": 93}

    def test_region(self):
        assert extract_region("產區：Napa Valley | 品酩價：840元") == "Napa Valley"
        assert extract_region("no region") is None


class TestScorePage:
    def test_accepted_page_yields_candidate(self, wine_target):
        result = score_page(WINE_PAGE, PAGE_URL, CandidateKind.DIRECT_PAGE, wine_target)

        match = result.match
        assert match is not None
        assert match.url == PAGE_URL
        assert match.image_url == "http://prowine.test/assets/uploads/wine-label.jpg"
        assert match.price == 1280
        assert match.region == "Bordeaux 波爾多"
        assert match.ratings == {"Decanter": 95, "James Suckling": 93}

    def test_matched_page_without_data_is_no_match(self, wine_target):
        html = "<html><body><h1>Château Exemple</h1></body></html>"

        result = score_page(html, PAGE_URL, CandidateKind.DIRECT_PAGE, wine_target)

        assert result.match is None
        assert "no image" in result.reason

    def test_listing_page_returns_links(self, wine_target):
        html = '<a href="/?wine=chateau-exemple-2020">Château Exemple 2020</a>'

        result = score_page(html, "http://prowine.test/?s=Chateau", CandidateKind.SEARCH, wine_target)

        assert result.match is None
        assert result.links[0].url == "http://prowine.test/?wine=chateau-exemple-2020"


class TestLinkScoring:
    SEARCH_URL = "http://prowine.test/?s=Reserve"

    def test_links_ranked_and_filtered(self):
        target = MatchTarget(entity_id="w1", name_en="Lusty Reserve Cabernet")
        html = """
        <a href="/?wine=opus-one">Opus One 2019</a>
        <a href="/?wine=lusty-reserve-cabernet-2019">Lusty Reserve Cabernet 2019</a>
        <a href="/?page_id=12">Lusty Reserve Cabernet (blog)</a>
        <a href="/?wine=lusty-rose">Lusty Rosé</a>
        """
        links = score_links(parse_html(html), self.SEARCH_URL, target)

        assert [link.url for link in links] == ["http://prowine.test/?wine=lusty-reserve-cabernet-2019"]
        assert links[0].score >= 40

    def test_parent_bonus_and_mismatch_penalty(self):
        target = MatchTarget(
            entity_id="w1",
            name_en="Reserve Cabernet Sauvignon",
            parent_name_en="Lusty Winery",
            other_parents=["Opus Winery"],
        )
        html = """
        <a href="/?wine=a">Opus Winery Reserve Cabernet Sauvignon</a>
        <a href="/?wine=b">Lusty Winery Reserve Cabernet Sauvignon</a>
        """
        links = score_links(parse_html(html), self.SEARCH_URL, target)

        assert [link.url for link in links] == ["http://prowine.test/?wine=b"]

    def test_ties_keep_document_order(self):
        target = MatchTarget(entity_id="w1", name_en="Reserve Cabernet")
        html = """
        <a href="/?wine=x">Reserve Cabernet</a>
        <a href="/?wine=y">Reserve Cabernet</a>
        """
        links = score_links(parse_html(html), self.SEARCH_URL, target)

        assert [link.url for link in links] == ["http://prowine.test/?wine=x", "http://prowine.test/?wine=y"]
