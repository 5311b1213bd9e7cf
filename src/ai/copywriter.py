"""
Catalog copy generation.

Asks the chat model for a JSON object with descriptions, tasting notes and
food pairings. Replies that are not valid JSON (or fail validation) fall
back to deterministic template copy, so imports never block on the model.
"""

import json
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from rich.console import Console

from src.ai.openai_client import OpenAIClient
from src.extractors.source_files import WineRecord, WineryRecord

console = Console()

SYSTEM_PROMPT = (
    "You write catalog copy for a Taiwanese fine-wine importer. "
    "Tone: elegant, professional, grounded in heritage, craft and terroir. "
    "Never invent awards or scores you are not sure of. Reply with JSON only."
)

WINERY_PROMPT = """請為以下酒莊生成介紹內容：

酒莊名稱（中文）：{name_zh}
酒莊名稱（英文）：{name_en}
產區：{region}
國家：{country}
官方網站：{website}

只返回 JSON：
{{
  "descriptionZh": "中文描述（約300字）",
  "descriptionEn": "English description (about 200 words)",
  "storyZh": "中文故事（歷史、釀酒哲學、風土）",
  "storyEn": "English story"
}}"""

WINE_PROMPT = """請為以下酒款生成介紹內容：

酒款名稱：{name}
年份：{vintage}
酒莊：{winery}
產區：{region}
國家：{country}

只返回 JSON：
{{
  "descriptionZh": "中文描述（約200字）",
  "descriptionEn": "English description",
  "tastingNotes": {{"color": "", "aroma": "", "palate": "", "finish": ""}},
  "foodPairing": {{"chinese": [""], "western": [""]}},
  "ratings": {{}}
}}"""


class _Copy(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    description_zh: Optional[str] = Field(None, alias="descriptionZh")
    description_en: Optional[str] = Field(None, alias="descriptionEn")


class WineryCopy(_Copy):
    story_zh: Optional[str] = Field(None, alias="storyZh")
    story_en: Optional[str] = Field(None, alias="storyEn")


class TastingNotes(BaseModel):
    color: str = ""
    aroma: str = ""
    palate: str = ""
    finish: str = ""


class FoodPairing(BaseModel):
    chinese: list[str] = Field(default_factory=list)
    western: list[str] = Field(default_factory=list)


class WineCopy(_Copy):
    tasting_notes: Optional[TastingNotes] = Field(None, alias="tastingNotes")
    food_pairing: Optional[FoodPairing] = Field(None, alias="foodPairing")
    ratings: dict[str, int] = Field(default_factory=dict)


def extract_json_object(text: str) -> Optional[dict]:
    """
    Pull the first JSON object out of a model reply.

    Handles ```json fences and prose around the object. Returns None when
    nothing parses to a dict.
    """
    if not text:
        return None
    text = re.sub(r"```(?:json)?", "", text)
    start, end = text.find("{"), text.rfind("}")
    if start < 0 or end <= start:
        return None
    try:
        parsed = json.loads(text[start : end + 1])
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


def _place(region: Optional[str], country: Optional[str]) -> str:
    return region or country or "知名產區"


def fallback_winery_copy(winery: WineryRecord) -> WineryCopy:
    place = _place(winery.region, winery.country)
    name = winery.name_zh
    return WineryCopy(
        description_zh=(
            f"{name} 是來自 {place} 的精品酒莊，以其卓越的釀酒工藝和對風土的深刻理解而聞名。"
            "酒莊致力於生產能夠完美展現產區特色的優質葡萄酒，每一瓶都承載著釀酒師的匠心與對品質的堅持。"
        ),
        description_en=(
            f"{winery.name_en or name} is a premium winery from {place}, renowned for its "
            "exceptional winemaking craftsmanship and deep understanding of terroir."
        ),
        story_zh=(
            f"{name} 擁有悠久的釀酒傳統。酒莊位於 {place} 的優質產區，"
            "這裡的獨特風土條件為葡萄的生長提供了理想的環境。"
        ),
        story_en=(
            f"{winery.name_en or name} has a long tradition of winemaking and is located "
            f"in the premium wine region of {place}."
        ),
    )


def fallback_wine_copy(wine: WineRecord, winery_name: str = "") -> WineCopy:
    vintage = f" {wine.vintage}" if wine.vintage else ""
    source = winery_name or _place(wine.region, wine.country)
    return WineCopy(
        description_zh=f"{wine.name_zh}{vintage} 是一款來自 {source} 的優質葡萄酒。",
        description_en=f"{wine.name_en or wine.name_zh}{vintage} is a premium wine from {source}.",
        tasting_notes=TastingNotes(
            color="深紫紅色", aroma="黑莓、黑醋栗", palate="濃郁豐滿", finish="餘韻悠長"
        ),
        food_pairing=FoodPairing(
            chinese=["紅燒肉", "北京烤鴨", "東坡肉"],
            western=["牛排", "烤羊排", "義大利麵"],
        ),
    )


class Copywriter:
    """Generates descriptions with OpenAI, or templates when no client is set."""

    def __init__(self, client: Optional[OpenAIClient] = None):
        self.client = client

    def _ask(self, prompt: str, model_cls):
        if not self.client:
            return None
        reply = self.client.generate(prompt, system=SYSTEM_PROMPT, temperature=0.7)
        data = extract_json_object(reply)
        if data is None:
            console.print("[yellow]    AI reply was not JSON, using template copy[/yellow]")
            return None
        try:
            return model_cls.model_validate(data)
        except ValidationError as e:
            console.print(f"[yellow]    AI reply failed validation, using template copy: {e.error_count()} error(s)[/yellow]")
            return None

    def winery_copy(self, winery: WineryRecord) -> WineryCopy:
        prompt = WINERY_PROMPT.format(
            name_zh=winery.name_zh,
            name_en=winery.name_en or "未提供",
            region=winery.region or "未提供",
            country=winery.country or "未提供",
            website=winery.website or "無",
        )
        generated = self._ask(prompt, WineryCopy)
        fallback = fallback_winery_copy(winery)
        if generated is None:
            return fallback
        # Keep template text for any field the model left blank
        return WineryCopy(**{
            key: getattr(generated, key) or getattr(fallback, key)
            for key in WineryCopy.model_fields
        })

    def wine_copy(self, wine: WineRecord, winery_name: str = "") -> WineCopy:
        prompt = WINE_PROMPT.format(
            name=wine.name_zh,
            vintage=wine.vintage or "無年份",
            winery=winery_name or "未提供",
            region=wine.region or "未提供",
            country=wine.country or "未提供",
        )
        generated = self._ask(prompt, WineCopy)
        fallback = fallback_wine_copy(wine, winery_name)
        if generated is None:
            return fallback
        return WineCopy(
            description_zh=generated.description_zh or fallback.description_zh,
            description_en=generated.description_en or fallback.description_en,
            tasting_notes=generated.tasting_notes or fallback.tasting_notes,
            food_pairing=generated.food_pairing or fallback.food_pairing,
            ratings=generated.ratings,
        )
