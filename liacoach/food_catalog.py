from __future__ import annotations

from dataclasses import dataclass, field

from liacoach.textnorm import normalize


@dataclass(frozen=True)
class Per100g:
    kcal: float
    protein_g: float
    carbs_g: float
    fat_g: float
    fiber_g: float | None = None


@dataclass(frozen=True)
class FoodCatalogItem:
    id: str
    name: str
    aliases: tuple[str, ...]
    default_serving_grams: float
    per_100g: Per100g
    # unit word -> grams per unit
    units: dict[str, float] = field(default_factory=dict)


# Order matters: lookup is first match wins.
FOOD_CATALOG: tuple[FoodCatalogItem, ...] = (
    FoodCatalogItem(
        id="banana",
        name="platano",
        aliases=("platano", "banana", "banano"),
        default_serving_grams=120,
        units={"unidad": 120, "platano": 120, "banana": 120},
        per_100g=Per100g(kcal=89, protein_g=1.1, carbs_g=22.8, fat_g=0.3, fiber_g=2.6),
    ),
    FoodCatalogItem(
        id="egg",
        name="huevo",
        aliases=("huevo", "huevos"),
        default_serving_grams=60,
        units={"unidad": 60, "huevo": 60},
        per_100g=Per100g(kcal=143, protein_g=12.6, carbs_g=0.7, fat_g=9.5),
    ),
    FoodCatalogItem(
        id="rice",
        name="arroz",
        aliases=("arroz",),
        default_serving_grams=150,
        units={"racion": 150},
        per_100g=Per100g(kcal=130, protein_g=2.7, carbs_g=28.2, fat_g=0.3),
    ),
    FoodCatalogItem(
        id="chicken_breast",
        name="pollo",
        aliases=("pollo", "pechuga de pollo"),
        default_serving_grams=150,
        units={"racion": 150},
        per_100g=Per100g(kcal=165, protein_g=31, carbs_g=0, fat_g=3.6),
    ),
    FoodCatalogItem(
        id="bread",
        name="pan",
        aliases=("pan",),
        default_serving_grams=40,
        units={"rebanada": 30, "rebanadas": 30},
        per_100g=Per100g(kcal=265, protein_g=9, carbs_g=49, fat_g=3.2, fiber_g=2.7),
    ),
    FoodCatalogItem(
        id="olive_oil",
        name="aceite de oliva",
        aliases=("aceite", "aceite de oliva"),
        default_serving_grams=10,
        units={"cucharada": 10},
        per_100g=Per100g(kcal=884, protein_g=0, carbs_g=0, fat_g=100),
    ),
    FoodCatalogItem(
        id="milk",
        name="leche",
        aliases=("leche",),
        default_serving_grams=250,
        units={"vaso": 250},
        per_100g=Per100g(kcal=61, protein_g=3.2, carbs_g=4.8, fat_g=3.3),
    ),
)


def find_catalog_item_by_text(text: str, catalog: tuple[FoodCatalogItem, ...] = FOOD_CATALOG) -> FoodCatalogItem | None:
    normalized = normalize(text)
    if not normalized:
        return None
    for item in catalog:
        if any(normalize(alias) in normalized for alias in item.aliases):
            return item
    return None


def find_catalog_item_by_name(name: str, catalog: tuple[FoodCatalogItem, ...] = FOOD_CATALOG) -> FoodCatalogItem | None:
    target = normalize(name)
    for item in catalog:
        if normalize(item.name) == target:
            return item
    return None
