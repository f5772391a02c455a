"""
Static dictionaries shared by query processing, intent classification and ranking.

Contains:
- Stop words and common typo corrections
- Synonyms for single and multi-word terms
- Category definitions (indicator keywords + boost terms)
- Feature keywords
- Related categories and category popularity priors
- Urgency keywords and intent patterns
"""

import re
from dataclasses import dataclass, field

from product_search.models.intent import SearchIntent, Urgency

STOP_WORDS: frozenset[str] = frozenset({
    "i", "want", "to", "need", "a", "an", "the", "for", "with", "and", "or",
    "but", "in", "on", "at", "by", "is", "are", "was", "were", "be", "been",
    "have", "has", "had", "do", "does", "did", "will", "would", "could",
    "should", "may", "might", "can", "something", "that", "this", "get",
    "find", "search", "show", "me", "buy", "order", "purchase",
    # Pronouns
    "my", "your", "our", "their", "its", "it", "you", "we", "they", "some",
    "of", "please",
})

# Deterministic, zero-latency typo fixes
TYPO_CORRECTIONS: dict[str, str] = {
    "dashcam": "dash cam",
    "smartwatch": "smart watch",
    "laptp": "laptop",
    "wireles": "wireless",
    "wirless": "wireless",
    "fitnes": "fitness",
    "sustanible": "sustainable",
    "bambo": "bamboo",
    "earbud": "earbuds",
    "resistence": "resistance",
    "plater": "planter",
    "guid": "guide",
    "cryto": "crypto",
    "automat": "automate",
    "devic": "device",
    "electonic": "electronic",
    "moniter": "monitor",
    "recoder": "recorder",
}

SYNONYMS: dict[str, list[str]] = {
    "camera": ["cam", "recorder", "recording device", "video device"],
    "dash cam": [
        "dashboard camera", "car camera", "driving recorder",
        "vehicle camera", "dashcam", "auto cam",
    ],
    "smart watch": [
        "smartwatch", "wrist computer", "fitness watch",
        "activity tracker", "digital watch",
    ],
    "laptop stand": [
        "computer stand", "notebook stand", "laptop holder",
        "laptop riser", "desk stand",
    ],
    "wireless": ["cordless", "bluetooth", "wifi", "remote", "untethered"],
    "fitness": ["exercise", "workout", "health", "activity", "training"],
    "tracker": ["monitor", "sensor", "detector", "counter"],
    "sustainable": ["eco-friendly", "green", "environmentally friendly", "eco"],
    "bamboo": ["eco-wood", "sustainable wood", "green material"],
    "hemp": ["organic fiber", "natural fiber", "eco fabric"],
    "led": ["light", "lighting", "illumination", "lamp"],
    "strip": ["band", "tape", "ribbon"],
    "planter": ["pot", "container", "garden pot", "plant holder"],
    "serum": ["treatment", "essence", "concentrate", "formula"],
    "resistance": ["strength", "training", "exercise", "workout"],
    "band": ["strap", "belt", "loop"],
    "guide": ["handbook", "manual", "book", "tutorial"],
    "crypto": ["cryptocurrency", "digital currency", "blockchain"],
    "nft": ["non-fungible token", "digital asset", "crypto art"],
    "earbuds": ["earphones", "headphones", "ear pieces", "audio devices"],
}


@dataclass(frozen=True)
class CategoryDefinition:
    """Indicator keywords (matched as substrings) and terms appended on match."""
    keywords: tuple[str, ...]
    boost_terms: tuple[str, ...] = field(default_factory=tuple)

    @property
    def expansion_terms(self) -> tuple[str, ...]:
        return self.boost_terms or self.keywords


CATEGORIES: dict[str, CategoryDefinition] = {
    "automotive": CategoryDefinition(
        keywords=("car", "vehicle", "driving", "dashboard", "dash cam", "dashcam", "automotive", "motor"),
        boost_terms=("dash cam", "car camera", "vehicle recorder"),
    ),
    "electronics": CategoryDefinition(
        keywords=("electronic", "device", "gadget", "tech", "smart", "digital"),
        boost_terms=("gadget", "device", "tech"),
    ),
    "wearables": CategoryDefinition(
        keywords=("watch", "tracker", "wearable", "smartwatch", "fitness", "health", "monitor"),
        boost_terms=("smartwatch", "fitness tracker", "health monitor"),
    ),
    "home": CategoryDefinition(
        keywords=("home", "house", "indoor", "room", "decoration", "furniture", "planter", "lighting"),
        boost_terms=("home improvement", "decoration", "smart home"),
    ),
    "clothing": CategoryDefinition(
        keywords=("apparel", "clothes", "clothing", "shirt", "garment", "fashion", "joggers", "hemp"),
    ),
    "sports": CategoryDefinition(
        keywords=("fitness", "exercise", "workout", "training", "athletic", "sports", "resistance"),
    ),
    "beauty": CategoryDefinition(
        keywords=("beauty", "skincare", "serum", "cosmetic", "hydrating"),
    ),
    "books": CategoryDefinition(
        keywords=("book", "guide", "handbook", "reading", "manual", "literature"),
    ),
    "digital": CategoryDefinition(
        keywords=("nft", "virtual", "online", "software", "crypto"),
    ),
}

# Feature name -> keywords (matched on word boundaries)
FEATURE_KEYWORDS: dict[str, list[str]] = {
    "recording": ["record", "recording", "recorder", "capture", "video", "camera", "cam"],
    "wireless": ["wireless", "bluetooth", "wifi", "cordless"],
    "smart": ["smart", "ai", "intelligent", "connected"],
    "sustainable": ["sustainable", "eco", "eco-friendly", "green", "bamboo", "hemp", "organic"],
    "fitness": ["fitness", "health", "exercise", "workout", "activity"],
    "power": ["solar", "battery", "rechargeable"],
    "waterproof": ["waterproof", "water resistant"],
    "lighting": ["led", "light", "lighting"],
    "monitoring": ["monitor", "tracking", "tracker", "sensor"],
}

RELATED_CATEGORIES: dict[str, list[str]] = {
    "electronics": ["automotive", "wearables", "home"],
    "automotive": ["electronics"],
    "wearables": ["electronics", "sports"],
    "sports": ["wearables", "clothing"],
    "home": ["electronics"],
}

# Prior used when neither the category nor a related one matches the intent
CATEGORY_POPULARITY: dict[str, float] = {
    "electronics": 0.9,
    "automotive": 0.7,
    "wearables": 0.8,
    "home": 0.6,
    "clothing": 0.5,
    "sports": 0.6,
    "beauty": 0.4,
    "books": 0.3,
    "digital": 0.7,
}
DEFAULT_CATEGORY_POPULARITY = 0.5

# Checked in order, first match wins
URGENCY_PATTERNS: list[tuple[Urgency, re.Pattern]] = [
    (Urgency.IMMEDIATE, re.compile(r"\b(?:now|immediately|urgent|asap|today)\b")),
    (Urgency.PLANNED, re.compile(r"\b(?:later|future|planning|considering)\b")),
    (Urgency.RESEARCH, re.compile(r"\b(?:research|learn|understand|compare)\b")),
]

# Autocomplete-style completions added to suggestions
QUERY_COMPLETIONS: dict[str, str] = {
    "dash": "dash cam",
    "smart": "smart watch",
    "laptop": "laptop stand",
    "fitness": "fitness tracker",
}


@dataclass(frozen=True)
class IntentPattern:
    """A single intent pattern.

    ``entity_groups`` maps an entity field name to the regex group holding it.
    """
    pattern: re.Pattern
    intent: SearchIntent
    confidence: float
    entity_groups: dict[str, int] = field(default_factory=dict)
    urgency: Urgency | None = None


def _p(regex: str) -> re.Pattern:
    return re.compile(regex)


# Canonical precedence: buy > compare > learn > recommend > browse.
# Within a group, narrower (higher confidence) patterns come first.
INTENT_PATTERNS: list[IntentPattern] = [
    # Buy
    IntentPattern(
        _p(r"\b(?:buy|purchase|order|get)\s+(.+)"),
        SearchIntent.BUY, 0.9,
        urgency=Urgency.IMMEDIATE,
    ),
    IntentPattern(
        _p(r"\b(?:looking for|need|want)\s+(?:an?\s+|some\s+)?(.+?)(?:\s+(?:to|for)\s+(.+))?$"),
        SearchIntent.BUY, 0.8,
        entity_groups={"product_type": 1, "use_case": 2},
    ),
    # Compare
    IntentPattern(
        _p(r"\b(?:compare|difference between|vs|versus)\s+(.+)"),
        SearchIntent.COMPARE, 0.9,
    ),
    IntentPattern(
        _p(r"\b(?:which is better|better than)\s*(.*)"),
        SearchIntent.COMPARE, 0.8,
    ),
    # Learn
    IntentPattern(
        _p(r"\b(?:how does|how do|what is|what are|tell me about|explain)\s+(.+)"),
        SearchIntent.LEARN, 0.9,
    ),
    IntentPattern(
        _p(r"\b(?:information about|info on|details of|specs for)\s+(.+)"),
        SearchIntent.LEARN, 0.8,
    ),
    # Recommend
    IntentPattern(
        _p(r"\b(?:recommend|suggest|advice)\w*\s+(.+)"),
        SearchIntent.RECOMMEND, 0.9,
    ),
    IntentPattern(
        _p(r"\b(?:best|top|good)\s+(.+?)(?:\s+for\s+(.+))?$"),
        SearchIntent.RECOMMEND, 0.7,
        entity_groups={"product_type": 1, "use_case": 2},
    ),
    # Browse
    IntentPattern(
        _p(r"\b(?:browse|explore|see)\s+(.+)"),
        SearchIntent.BROWSE, 0.8,
    ),
    IntentPattern(
        _p(r"\b(?:show me|what|find|search for)\s+(.+)"),
        SearchIntent.BROWSE, 0.7,
    ),
]


def categories_in(text: str) -> list[str]:
    """Categories whose keywords appear as substrings, in definition order."""
    return [
        name
        for name, definition in CATEGORIES.items()
        if any(keyword in text for keyword in definition.keywords)
    ]


def _keyword_regex(keywords: list[str]) -> re.Pattern:
    alternatives = "|".join(re.escape(k) for k in keywords)
    return re.compile(rf"\b(?:{alternatives})\b")


_FEATURE_REGEXES: dict[str, re.Pattern] = {
    feature: _keyword_regex(keywords) for feature, keywords in FEATURE_KEYWORDS.items()
}


def features_in(text: str) -> list[str]:
    """Features whose keywords appear on word boundaries, in definition order."""
    return [feature for feature, regex in _FEATURE_REGEXES.items() if regex.search(text)]


_SYNONYM_REGEXES: dict[str, re.Pattern] = {
    term: re.compile(rf"(?<![\w-]){re.escape(term)}(?![\w-])") for term in SYNONYMS
}


def synonym_terms_in(text: str) -> list[str]:
    """Dictionary terms (single or multi-word) present as whole words."""
    return [term for term, regex in _SYNONYM_REGEXES.items() if regex.search(text)]


def urgency_in(text: str) -> Urgency | None:
    for urgency, regex in URGENCY_PATTERNS:
        if regex.search(text):
            return urgency
    return None
