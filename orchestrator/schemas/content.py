"""Target schemas for generated tabletop content."""

from __future__ import annotations

from typing import Literal, Optional, Union

from pydantic import Field, StrictBool, StrictFloat, StrictInt, StrictStr

from .validator import Integer, JoinedText, StructuredContent, TextList

Rarity = Literal["Common", "Uncommon", "Rare", "Very Rare", "Legendary", "Artifact"]
CreatureSize = Literal["Tiny", "Small", "Medium", "Large", "Huge", "Gargantuan"]


class UnknownSchemaError(ValueError):
    def __init__(self, schema_id: str) -> None:
        super().__init__(f"Unknown content schema: {schema_id}")
        self.schema_id = schema_id


class NamedFeature(StructuredContent):
    name: StrictStr = Field(min_length=1)
    description: StrictStr


class AbilityScores(StructuredContent):
    strength: Integer = Field(alias="STR", ge=1, le=30)
    dexterity: Integer = Field(alias="DEX", ge=1, le=30)
    constitution: Integer = Field(alias="CON", ge=1, le=30)
    intelligence: Integer = Field(alias="INT", ge=1, le=30)
    wisdom: Integer = Field(alias="WIS", ge=1, le=30)
    charisma: Integer = Field(alias="CHA", ge=1, le=30)


class Monster(StructuredContent):
    name: StrictStr = Field(min_length=1)
    size: CreatureSize
    type: StrictStr
    alignment: StrictStr
    armor_class: Integer = Field(ge=0)
    hit_points: Integer = Field(gt=0)
    speed: JoinedText
    challenge_rating: Union[StrictStr, StrictInt, StrictFloat]
    abilities: AbilityScores
    role: Optional[StrictStr] = None
    tactical_notes: Optional[StrictStr] = None
    saving_throws: Optional[JoinedText] = None
    skills: Optional[TextList] = None
    damage_resistances: Optional[JoinedText] = None
    damage_immunities: Optional[JoinedText] = None
    condition_immunities: Optional[JoinedText] = None
    senses: Optional[JoinedText] = None
    languages: Optional[JoinedText] = None
    traits: list[NamedFeature] = Field(default_factory=list)
    actions: list[NamedFeature] = Field(min_length=1)
    legendary_actions: Optional[JoinedText] = None


class Encounter(StructuredContent):
    name: StrictStr
    type: StrictStr
    difficulty: Literal["Easy", "Medium", "Hard", "Deadly"]
    mechanics: StrictStr
    creatures: JoinedText


class SkillChallenge(StructuredContent):
    description: StrictStr
    dc: Integer = Field(ge=1, le=40)
    skills: TextList
    success: StrictStr
    failure: StrictStr


class Scene(StructuredContent):
    title: StrictStr = Field(min_length=1)
    objectives: TextList = Field(min_length=1)
    read_aloud_text: StrictStr
    key_elements: TextList = Field(default_factory=list)
    encounters: list[Encounter] = Field(default_factory=list)
    skill_challenges: list[SkillChallenge] = Field(default_factory=list)
    transitions: Optional[StrictStr] = None
    troubleshooting: Optional[StrictStr] = None


class AdventureHook(StructuredContent):
    hook_type: StrictStr
    description: StrictStr
    implementation: StrictStr


class MagicItem(StructuredContent):
    name: StrictStr = Field(min_length=1)
    type: StrictStr = Field(min_length=1)
    rarity: Rarity
    description: StrictStr = Field(min_length=10)
    properties: Optional[TextList] = None
    attunement: Optional[StrictBool] = None


class NPC(StructuredContent):
    name: StrictStr = Field(min_length=1)
    role: StrictStr = Field(min_length=1)
    description: StrictStr = Field(min_length=10)
    personality: Optional[StrictStr] = None
    motivation: Optional[StrictStr] = None
    secrets: Optional[TextList] = None


class Adventure(StructuredContent):
    title: StrictStr = Field(min_length=1)
    game_system: StrictStr = Field(min_length=1)
    recommended_level: StrictStr = Field(min_length=1)
    party_size: StrictStr = Field(min_length=1)
    estimated_duration: StrictStr = Field(min_length=1)
    summary: StrictStr = Field(min_length=20)
    theme: Optional[StrictStr] = None
    tone: Optional[StrictStr] = None
    adventure_hooks: list[AdventureHook] = Field(default_factory=list)
    scenes: list[Scene] = Field(min_length=1)
    monsters: list[Monster] = Field(default_factory=list)
    magic_items: list[MagicItem] = Field(default_factory=list)
    npcs: list[NPC] = Field(default_factory=list)
    rewards: TextList = Field(default_factory=list)
    notes: Optional[StrictStr] = None


class CharacterStats(StructuredContent):
    strength: Optional[Integer] = Field(default=None, ge=3, le=20)
    dexterity: Optional[Integer] = Field(default=None, ge=3, le=20)
    constitution: Optional[Integer] = Field(default=None, ge=3, le=20)
    intelligence: Optional[Integer] = Field(default=None, ge=3, le=20)
    wisdom: Optional[Integer] = Field(default=None, ge=3, le=20)
    charisma: Optional[Integer] = Field(default=None, ge=3, le=20)


class Character(StructuredContent):
    name: StrictStr = Field(min_length=1)
    character_class: StrictStr = Field(alias="class", min_length=1)
    race: StrictStr = Field(min_length=1)
    level: Integer = Field(ge=1, le=20)
    background: Optional[StrictStr] = None
    alignment: Optional[StrictStr] = None
    stats: Optional[CharacterStats] = None
    equipment: Optional[TextList] = None
    spells: Optional[TextList] = None
    personality: Optional[StrictStr] = None


SCHEMAS: dict[str, type[StructuredContent]] = {
    "adventure": Adventure,
    "monster": Monster,
    "npc": NPC,
    "magic_item": MagicItem,
    "character": Character,
}


def get_schema(schema_id: str) -> type[StructuredContent]:
    try:
        return SCHEMAS[schema_id]
    except KeyError:
        raise UnknownSchemaError(schema_id) from None


__all__ = [
    "SCHEMAS",
    "Adventure",
    "Character",
    "MagicItem",
    "Monster",
    "NPC",
    "UnknownSchemaError",
    "get_schema",
]
