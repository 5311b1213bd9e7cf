"""
Tests for source reconciliation and catalog entity shaping.
"""

import pytest

from src.extractors.source_files import WineRecord, WineryRecord
from src.transformers.record_transformer import (
    Wine,
    Winery,
    infer_category,
    reconcile,
    wine_entity,
    winery_entity,
)


@pytest.fixture
def lusty():
    return WineryRecord(
        name_zh="樂事酒莊",
        name_en="Lusty Winery",
        region="Napa Valley",
        country="USA",
        website="https://lusty.example",
        wines=[
            WineRecord(name_zh="Reserve Cabernet", name_en="Reserve Cabernet", vintage=2019, winery_name="樂事酒莊"),
        ],
    )


class TestInferCategory:
    @pytest.mark.parametrize(
        "name, category",
        [
            ("Opus One", "RED_WINE"),
            ("Chablis Blanc", "WHITE_WINE"),
            ("Whispering Angel Rosé", "ROSE_WINE"),
            ("Sparkling Brut", "SPARKLING_WINE"),
            ("Krug Champagne", "CHAMPAGNE"),
            ("頂級氣泡酒", "SPARKLING_WINE"),
            ("", "RED_WINE"),
        ],
    )
    def test_keywords(self, name, category):
        assert infer_category(name) == category


class TestReconcile:
    def test_url_database_wins_for_region_and_website(self, lusty):
        row = WineryRecord(name_zh="樂事酒莊", region="California", country="USA", website="https://old.example")

        catalog = reconcile([row], {"樂事酒莊": lusty})

        assert len(catalog.wineries) == 1
        winery = catalog.wineries[0]
        assert winery.region == "Napa Valley"
        assert winery.website == "https://lusty.example"
        assert winery.name_en == "Lusty Winery"
        assert [w.name_zh for w in catalog.wines] == ["Reserve Cabernet"]

    def test_duplicate_wines_are_merged(self, lusty):
        """The same wine from the lists only fills the gaps of the first record."""
        listed = [WineRecord(name_zh="Reserve  Cabernet", vintage=2019, country="USA")]
        from_json = [
            WineRecord(name_zh="reserve cabernet", vintage=2019, known_url="http://prowine.com.tw/?wine=rc", price=3200),
        ]

        catalog = reconcile([], {"樂事酒莊": lusty}, listed, from_json)

        assert len(catalog.wines) == 1
        wine = catalog.wines[0]
        assert wine.winery_name == "樂事酒莊"
        assert wine.known_url == "http://prowine.com.tw/?wine=rc"
        assert wine.price == 3200

    def test_different_vintages_are_distinct(self, lusty):
        listed = [WineRecord(name_zh="Reserve Cabernet", vintage=2020)]

        catalog = reconcile([], {"樂事酒莊": lusty}, listed)

        assert [w.vintage for w in catalog.wines] == [2019, 2020]

    def test_unowned_wine_is_attached_by_winery_name(self, lusty):
        listed = [WineRecord(name_zh="Lusty Winery Pinot Noir", vintage=2021)]

        catalog = reconcile([], {"樂事酒莊": lusty}, listed)

        wine = catalog.wines[-1]
        assert wine.winery_name == "樂事酒莊"
        assert wine.region == "Napa Valley"
        assert wine.country == "USA"
        assert catalog.winery_for(wine) is catalog.wineries[0]

    def test_winery_links_fill_missing_website(self):
        row = WineryRecord(name_zh="艾克斯酒堡", country="France")

        catalog = reconcile([row], {}, winery_links={"艾克斯酒堡": "https://exemple.example"})

        assert catalog.wineries[0].website == "https://exemple.example"

    def test_csv_row_and_database_section_not_duplicated(self, lusty):
        catalog = reconcile([WineryRecord(name_zh="樂事酒莊")], {"樂事酒莊": lusty, "其他酒莊": WineryRecord(name_zh="其他酒莊")})

        assert [w.name_zh for w in catalog.wineries] == ["樂事酒莊", "其他酒莊"]


class TestEntities:
    def test_wine_entity(self):
        record = WineRecord(name_zh="第一樂章", name_en="Opus One", vintage=2019, price=12800,
                            known_url="http://prowine.com.tw/?wine=opus-one")

        wine = wine_entity(record, winery_id="winery_opus-one", description_zh="經典")

        assert wine.slug == "opus-one-2019"
        assert wine.stable_id() == "wine_opus-one-2019"
        assert wine.category == "RED_WINE"
        assert wine.source_url == "http://prowine.com.tw/?wine=opus-one"
        assert wine.winery_id == "winery_opus-one"

    def test_to_record_uses_column_aliases(self):
        wine = Wine(slug="opus-one-2019", name_zh="第一樂章", main_image_url="http://x/a.jpg", price=12800)

        record = wine.to_record()

        assert record == {
            "slug": "opus-one-2019",
            "nameZh": "第一樂章",
            "mainImageUrl": "http://x/a.jpg",
            "price": 12800.0,
        }

    def test_accepts_column_names(self):
        winery = Winery.model_validate({"slug": "lusty", "nameZh": "樂事酒莊", "logoUrl": "http://x/l.png"})

        assert winery.logo_url == "http://x/l.png"
        assert winery.stable_id() == "winery_lusty"

    def test_blank_description_is_dropped(self):
        assert Wine(slug="a", name_zh="a", description_zh="  \t ").description_zh is None

    def test_cjk_only_winery_still_gets_slug(self):
        winery = winery_entity(WineryRecord(name_zh="樂事酒莊"))

        assert winery.slug
        assert winery.name_en == "樂事酒莊"
