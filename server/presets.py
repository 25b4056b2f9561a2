"""
Built-in item packs.

A pack is a named list of strings. Hosts pick a pack (or paste their own
text) in the lobby; the client turns it into items and sends "set-items".
The helpers here build items with fresh random ids so the REST API can do
that work for clients.
"""

import random
import re
from dataclasses import dataclass, field
from typing import Optional

from constants import ITEM_ID_ALPHABET, ITEM_ID_LENGTH
from game import Item

CATEGORY_NAMES: dict[str, str] = {
    "food": "Food & Drink",
    "entertainment": "Entertainment",
    "lifestyle": "Lifestyle",
    "sports": "Sports",
    "misc": "Misc",
}


@dataclass
class PresetPack:
    """A built-in list of things to rank."""

    id: str
    name: str
    description: str
    category: str
    items: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "items": list(self.items),
        }


PRESET_PACKS: list[PresetPack] = [
    # FOOD
    PresetPack(
        id="ice-cream",
        name="Ice Cream Flavors",
        description="Classic ice cream flavors",
        category="food",
        items=[
            "Vanilla", "Chocolate", "Strawberry", "Mint Chocolate Chip", "Cookie Dough",
            "Cookies and Cream", "Rocky Road", "Pistachio", "Coffee", "Butter Pecan",
        ],
    ),
    PresetPack(
        id="pizza-toppings",
        name="Pizza Toppings",
        description="Classic pizza toppings",
        category="food",
        items=[
            "Pepperoni", "Mushrooms", "Sausage", "Onions", "Green Peppers",
            "Olives", "Bacon", "Pineapple", "Jalapeños", "Extra Cheese",
        ],
    ),
    PresetPack(
        id="breakfast",
        name="Breakfast Foods",
        description="Morning meal favorites",
        category="food",
        items=[
            "Pancakes", "Waffles", "Eggs Benedict", "French Toast", "Bacon",
            "Avocado Toast", "Cereal", "Oatmeal", "Bagel with Cream Cheese", "Breakfast Burrito",
        ],
    ),
    # ENTERTAINMENT
    PresetPack(
        id="tv-shows",
        name="TV Shows",
        description="Popular television series",
        category="entertainment",
        items=[
            "Breaking Bad", "Game of Thrones", "The Office", "Friends", "Stranger Things",
            "The Simpsons", "Squid Game", "Ted Lasso", "Succession", "Wednesday",
        ],
    ),
    PresetPack(
        id="video-games",
        name="Video Games",
        description="Popular video game titles",
        category="entertainment",
        items=[
            "Minecraft", "Fortnite", "Grand Theft Auto V", "The Legend of Zelda", "Call of Duty",
            "Mario Kart", "FIFA/EA Sports FC", "Elden Ring", "Animal Crossing", "Roblox",
        ],
    ),
    PresetPack(
        id="disney-pixar",
        name="Disney/Pixar Movies",
        description="Animated classics",
        category="entertainment",
        items=[
            "The Lion King", "Toy Story", "Frozen", "Finding Nemo", "The Little Mermaid",
            "Up", "Moana", "Coco", "Inside Out", "Encanto",
        ],
    ),
    # LIFESTYLE
    PresetPack(
        id="vacation-spots",
        name="Vacation Destinations",
        description="Dream travel locations",
        category="lifestyle",
        items=[
            "Hawaii", "Paris", "New York City", "Tokyo", "Cancun",
            "London", "Las Vegas", "Bali", "Rome", "Maldives",
        ],
    ),
    PresetPack(
        id="pets",
        name="Pets",
        description="Popular pet choices",
        category="lifestyle",
        items=[
            "Dog", "Cat", "Fish", "Hamster", "Rabbit",
            "Bird", "Guinea Pig", "Turtle", "Snake", "Ferret",
        ],
    ),
    # SPORTS
    PresetPack(
        id="sports",
        name="Sports",
        description="Popular sports",
        category="sports",
        items=[
            "Football (American)", "Basketball", "Soccer", "Baseball", "Tennis",
            "Golf", "Hockey", "Swimming", "Boxing", "MMA",
        ],
    ),
    # MISC
    PresetPack(
        id="superpowers",
        name="Superpowers",
        description="If you could have any power...",
        category="misc",
        items=[
            "Flying", "Invisibility", "Super Strength", "Teleportation", "Mind Reading",
            "Time Travel", "Super Speed", "Shapeshifting", "Telekinesis", "Immortality",
        ],
    ),
]


def new_item_id() -> str:
    """Random short id for a freshly built item."""
    return "".join(random.choices(ITEM_ID_ALPHABET, k=ITEM_ID_LENGTH))


def _to_items(texts: list[str]) -> list[Item]:
    return [Item(id=new_item_id(), text=text) for text in texts]


def get_pack(pack_id: str) -> Optional[PresetPack]:
    for pack in PRESET_PACKS:
        if pack.id == pack_id:
            return pack
    return None


def get_packs_by_category(category: str) -> list[PresetPack]:
    return [pack for pack in PRESET_PACKS if pack.category == category]


def get_categories() -> list[str]:
    """Categories that have at least one pack, in first-seen order."""
    return list(dict.fromkeys(pack.category for pack in PRESET_PACKS))


def get_random_packs(count: int) -> list[PresetPack]:
    return random.sample(PRESET_PACKS, min(count, len(PRESET_PACKS)))


def pack_to_items(pack: PresetPack) -> list[Item]:
    return _to_items(pack.items)


def pack_to_items_subset(pack: PresetPack, count: int) -> list[Item]:
    """A random selection of up to count items from the pack."""
    return _to_items(random.sample(pack.items, min(count, len(pack.items))))


def text_to_items(text: str) -> list[Item]:
    """Build items from free text, one per comma- or newline-separated entry."""
    entries = (entry.strip() for entry in re.split(r"[,\n]", text))
    return _to_items([entry for entry in entries if entry])


def mix_packs(packs: list[PresetPack], total_items: int) -> list[Item]:
    """A shuffled selection of distinct entries drawn from several packs."""
    pool = [text for pack in packs for text in pack.items]
    random.shuffle(pool)
    unique = list(dict.fromkeys(pool))
    return _to_items(unique[:total_items])
