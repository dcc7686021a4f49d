"""Word lists used by the discovery scanner.

``SKIP_WORDS`` are capitalized English words that never start or make up a
name on their own. ``IGNORED_TERMS`` are game-system vocabulary that looks like
a proper noun but is not a campaign entity. The ``*_WORDS`` tables drive the
type guess for free-text discoveries.
"""

from __future__ import annotations

import re

SKIP_WORDS = frozenset({
    "The", "This", "That", "They", "There", "These", "Those", "Their", "Them",
    "He", "She", "His", "Her", "Him", "It", "Its", "We", "Our", "You", "Your",
    "When", "Where", "What", "Which", "Who", "Whom", "Whose", "Why", "How",
    "However", "Although", "Because", "Therefore", "Furthermore", "Moreover",
    "Nevertheless", "Meanwhile", "Otherwise", "Indeed", "Perhaps", "Certainly",
    "Probably", "Obviously", "Clearly", "Simply", "Actually", "Basically",
    "Essentially", "Generally", "Normally", "Usually", "Often", "Sometimes",
    "Always", "Never", "Here", "Now", "Then", "Today", "Tomorrow", "Yesterday",
    "Later", "Soon", "Before", "After", "During", "While", "Until", "Since",
    "Once", "Twice", "First", "Second", "Third", "Finally", "Last", "Next",
    "Another", "Other", "Each", "Every", "Both", "Either", "Neither", "Many",
    "Most", "Some", "Any", "All", "None", "Few", "Several", "Much", "More",
    "Less", "Least", "Very", "Quite", "Rather", "Almost", "Nearly", "Hardly",
    "Barely", "Just", "Only", "Even", "Still", "Already", "Yet", "Not", "No",
    "Yes", "And", "But", "Or", "For", "Nor", "So", "With", "Without",
    "Within", "Beyond", "Against", "Among", "Between", "Through", "Throughout",
    "Across", "Around", "About", "Above", "Below", "Under", "Over", "Behind",
    "Beside", "Inside", "Outside", "Into", "Onto", "Upon", "From", "Toward",
    "Towards", "If", "In", "On", "At", "By", "To", "Of", "As", "An", "A",
    "Despite", "Though", "Unless", "Whether", "Whenever", "Wherever",
})

IGNORED_TERMS = frozenset(term.lower() for term in (
    # Mechanics
    "Strength", "Dexterity", "Constitution", "Intelligence", "Wisdom", "Charisma",
    "Armor Class", "Hit Points", "Hit Dice", "Spell Slots", "Proficiency Bonus",
    "Saving Throw", "Ability Check", "Skill Check", "Initiative", "Advantage",
    "Disadvantage", "Concentration", "Resistance", "Vulnerability", "Immunity",
    "Action", "Bonus Action", "Reaction", "Movement", "Opportunity Attack",
    "Ranged Attack", "Melee Attack", "Critical Hit", "Natural Twenty",
    "Spell Save", "Death Save", "Death Saving Throw", "Challenge Rating",
    # Classes
    "Barbarian", "Bard", "Cleric", "Druid", "Fighter", "Monk", "Paladin",
    "Ranger", "Rogue", "Sorcerer", "Warlock", "Wizard", "Artificer",
    # Peoples and creature families
    "Human", "Elf", "Dwarf", "Halfling", "Gnome", "Half-Elf", "Half-Orc",
    "Tiefling", "Dragonborn", "Aasimar", "Genasi", "Goliath", "Tabaxi",
    "Kenku", "Firbolg", "Triton", "Yuan-ti", "Changeling", "Warforged",
    "Goblin", "Hobgoblin", "Bugbear", "Kobold", "Orc", "Lizardfolk",
    "Dragon", "Giant", "Undead", "Fiend", "Celestial", "Fey", "Elemental",
    "Construct", "Monstrosity", "Aberration", "Ooze", "Beast", "Humanoid",
    # Equipment
    "Longsword", "Shortsword", "Greatsword", "Rapier", "Scimitar", "Dagger",
    "Battleaxe", "Greataxe", "Handaxe", "Warhammer", "Maul", "Quarterstaff",
    "Javelin", "Halberd", "Glaive", "Longbow", "Shortbow", "Crossbow",
    "Leather Armor", "Chain Shirt", "Scale Mail", "Breastplate", "Half Plate",
    "Chain Mail", "Plate Armor", "Shield", "Potion", "Scroll", "Weapon",
    # Magic schools, conditions, damage types
    "Abjuration", "Conjuration", "Divination", "Enchantment", "Evocation",
    "Illusion", "Necromancy", "Transmutation", "Arcane", "Divine", "Primal",
    "Blinded", "Charmed", "Deafened", "Frightened", "Grappled", "Incapacitated",
    "Invisible", "Paralyzed", "Petrified", "Poisoned", "Prone", "Restrained",
    "Stunned", "Unconscious", "Exhaustion", "Bludgeoning", "Piercing",
    "Slashing", "Fire", "Cold", "Lightning", "Thunder", "Acid", "Poison",
    "Necrotic", "Radiant", "Force", "Psychic",
    # Alignments
    "Lawful Good", "Neutral Good", "Chaotic Good", "Lawful Neutral",
    "True Neutral", "Chaotic Neutral", "Lawful Evil", "Neutral Evil", "Chaotic Evil",
    # Time and direction
    "Dawn", "Dusk", "Midnight", "Noon", "Morning", "Evening", "Night", "Day",
    "Week", "Month", "Year", "Century", "Age", "Era",
    "North", "South", "East", "West", "Northeast", "Northwest", "Southeast", "Southwest",
    # Generic fantasy adjectives
    "Magic", "Magical", "Curse", "Cursed", "Blessing", "Blessed", "Holy",
    "Unholy", "Sacred", "Ancient", "Lost", "Hidden", "Secret", "Forbidden",
    "Legendary", "Mythical", "Artifact", "Unknown", "Various", "Multiple",
    "Gold", "Silver", "Copper", "Platinum",
))

# Phrases too generic to name a specific entity
GENERIC_PATTERNS = (
    re.compile(r"^the\s+(leader|enemy|guard|merchant|soldier|commander|captain)s?$", re.I),
    re.compile(r"^(a|an)\s+\w+$", re.I),
    re.compile(r"^the\s+[\w'’-]+$", re.I),
    re.compile(r"^(some|many|few|several)\s+", re.I),
)

GENERIC_SINGLE_WORDS = frozenset({
    "guards", "soldiers", "mercenaries", "bandits", "villagers",
    "townsfolk", "citizens", "people", "council", "party",
})

NPC_TITLES = frozenset({
    "lord", "lady", "king", "queen", "prince", "princess", "duke", "duchess",
    "baron", "baroness", "count", "countess", "earl", "marquis", "viscount",
    "sir", "dame", "master", "mistress", "captain", "commander", "general",
    "admiral", "chief", "doctor", "professor", "elder", "priest", "priestess",
    "archmage", "archdruid", "father", "mother", "brother", "sister", "saint",
})

FACTION_WORDS = frozenset({
    "guild", "order", "brotherhood", "sisterhood", "clan", "tribe", "house",
    "family", "organization", "society", "cult", "church", "circle", "council",
    "assembly", "consortium", "syndicate", "cartel", "army", "legion", "band",
    "company", "faction", "alliance", "coalition", "league", "union", "pact",
    "covenant", "cabal", "coven", "conclave", "watch",
})

LOCATION_WORDS = frozenset({
    "mountains", "mountain", "mount", "peak", "ridge", "hills", "hill",
    "forest", "woods", "grove", "jungle", "lake", "river", "stream", "falls",
    "sea", "ocean", "bay", "island", "isle", "coast", "shore", "castle",
    "fortress", "citadel", "stronghold", "keep", "tower", "spire", "palace",
    "manor", "city", "town", "village", "hamlet", "outpost", "camp", "vale",
    "valley", "canyon", "gorge", "plains", "desert", "wastes", "swamp",
    "marsh", "bog", "fen", "port", "harbor", "haven", "docks", "hall",
    "temple", "shrine", "sanctum", "sanctuary", "monastery", "abbey",
    "cathedral", "chapel", "dungeon", "cavern", "cave", "grotto", "mines",
    "pit", "chasm", "realm", "kingdom", "empire", "province", "region",
    "lands", "road", "pass", "bridge", "gate", "gates", "district", "quarter",
    "ward", "market", "square", "inn", "tavern", "pub", "alehouse",
})

ITEM_WORDS = frozenset({
    "sword", "blade", "dagger", "knife", "axe", "hammer", "mace", "spear",
    "lance", "bow", "staff", "wand", "rod", "orb", "ring", "amulet",
    "necklace", "pendant", "bracelet", "gauntlet", "helm", "crown", "circlet",
    "mask", "cloak", "robe", "armor", "shield", "boots", "belt", "tome",
    "book", "grimoire", "codex", "gem", "jewel", "crystal", "stone", "potion",
    "elixir", "relic", "chalice", "key", "horn",
})

QUEST_WORDS = frozenset({"quest", "mission", "prophecy", "bounty", "legend", "rumor"})

# Context phrases around a span that hint at its type
FACTION_CONTEXT = ("member of", "belongs to", "joined", "leader of", "leads the", "allied with", "rivals of")
LOCATION_CONTEXT = ("located", "situated", "lies in", "lies at", "traveled to", "arrived at", "arrived in", "returned to", "near the")
ITEM_CONTEXT = ("wielded", "wielding", "carried", "carrying", "wearing", "holds", "holding", "possesses", "enchanted")

# Words that describe the kind of thing rather than which thing; ignored when
# comparing a candidate against existing entity names.
KIND_WORDS = NPC_TITLES | FACTION_WORDS | LOCATION_WORDS | ITEM_WORDS


def should_ignore_term(term: str) -> bool:
    return term.strip().lower() in IGNORED_TERMS


def is_generic(term: str) -> bool:
    text = term.strip()
    if len(text) < 4:
        return True
    if text.lower() in GENERIC_SINGLE_WORDS:
        return True
    return any(p.search(text) for p in GENERIC_PATTERNS)
