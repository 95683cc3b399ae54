from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

Operation = Literal["create", "update"]
MutationStatus = Literal["applied", "blocked", "skipped", "error"]
CharacterType = Literal["character", "companion"]
ItemCategory = Literal["weapon", "armor", "accessory", "consumable", "tool", "misc"]
AttachmentType = Literal["action", "ability", "trait", "spell", "cantrip", "classFeature", "other"]
SpellCollection = Literal["customSpells", "customCantrips"]
FeatureCollection = Literal["customTraits", "customClassAbilities"]
FeatureActionType = Literal["action", "bonus", "reaction", "passive"]
AbilityKey = Literal["STR", "DEX", "CON", "INT", "WIS", "CHA"]

STAT_KEYS: tuple[str, ...] = ("str", "dex", "con", "int", "wis", "cha")
DETAIL_PATCH_KEYS: tuple[str, ...] = (
    "notes",
    "background",
    "alignment",
    "personalityTraits",
    "ideals",
    "bonds",
    "flaws",
    "appearance",
    "backstory",
    "languages",
    "proficiencies",
    "abilities",
    "inventory",
    "equipment",
)
PATCH_KINDS: tuple[str, ...] = ("item_patch", "learned_spell_patch", "custom_spell_patch", "custom_feature_patch")
MAX_ACTIONS = 4


class PatchModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)

    def dump(self) -> dict[str, Any]:
        """Only the keys that were explicitly provided, using wire names."""
        return self.model_dump(exclude_unset=True, by_alias=True)

    def provided(self, name: str) -> bool:
        return name in self.model_fields_set


class SpellComponents(PatchModel):
    verbal: bool | None = None
    somatic: bool | None = None
    material: bool | None = None


class ResourceCost(PatchModel):
    uses_spell_slot: bool | None = None
    slot_level: int | None = None
    charges: int | None = None
    recharge: Literal["short", "long"] | None = None
    points: int | None = None
    points_label: str | None = None


class SaveSpec(PatchModel):
    type: Literal["attack", "save", "none"] | None = None
    save_ability: AbilityKey | None = None
    dc_type: Literal["fixed", "stat"] | None = None
    dc_value: int | None = None
    dc_stat: AbilityKey | None = None


class DamageSpec(PatchModel):
    damage_type: str | None = None
    dice: str | None = None
    scaling: str | None = None


class SpellFields(PatchModel):
    school: str | None = None
    casting_time: str | None = None
    casting_time_note: str | None = None
    range: str | None = None
    components: SpellComponents | None = None
    materials: str | None = None
    duration: str | None = None
    concentration: bool | None = None
    ritual: bool | None = None
    resource_cost: ResourceCost | None = None
    save: SaveSpec | None = None
    damage: DamageSpec | None = None


class ItemAttachmentPatch(SpellFields):
    type: AttachmentType
    name: str
    level: int | None = None
    description: str | None = None
    action_type: FeatureActionType | None = None
    requirements: str | None = None
    effect: str | None = None


class ItemConfigurationPatch(PatchModel):
    name: str
    description: str | None = None
    usage: str | None = None
    damage: str | None = None
    range: str | None = None
    magic_bonus: int | None = None
    attachments: list[ItemAttachmentPatch] | None = None


class ItemPatch(PatchModel):
    target_item_name: str
    name: str | None = None
    create_if_missing: bool | None = None
    category: ItemCategory | None = None
    equippable: bool | None = None
    equipped: bool | None = None
    quantity: int | None = None
    rarity: str | None = None
    description: str | None = None
    attunement: bool | str | None = None
    tags_add: list[str] | None = None
    tags_remove: list[str] | None = None
    clear_attachments: bool | None = None
    attachments_add: list[ItemAttachmentPatch] | None = None
    attachments_replace: list[ItemAttachmentPatch] | None = None
    configurations_replace: list[ItemConfigurationPatch] | None = None


class LearnedSpellPatch(PatchModel):
    action: Literal["learn", "forget"] = "learn"
    spell_level: int
    spell_name: str | None = None
    spell_index: str | None = None


class CustomSpellPatch(SpellFields):
    target_spell_name: str
    collection: SpellCollection | None = None
    create_if_missing: bool | None = None
    remove: bool | None = None
    name: str | None = None
    level: int | None = None
    description: str | None = None


class CustomFeaturePatch(PatchModel):
    target_feature_name: str
    collection: FeatureCollection | None = None
    create_if_missing: bool | None = None
    remove: bool | None = None
    name: str | None = None
    level: int | None = None
    description: str | None = None
    action_type: FeatureActionType | None = None
    requirements: str | None = None
    effect: str | None = None
    subclass_id: str | None = None
    subclass_name: str | None = None
    resource_cost: ResourceCost | None = None


class StatsPatch(PatchModel):
    str_: int | None = Field(default=None, alias="str")
    dex: int | None = None
    con: int | None = None
    int_: int | None = Field(default=None, alias="int")
    wis: int | None = None
    cha: int | None = None


class DetailsPatch(PatchModel):
    notes: str | None = None
    background: str | None = None
    alignment: str | None = None
    personalityTraits: str | None = None
    ideals: str | None = None
    bonds: str | None = None
    flaws: str | None = None
    appearance: str | None = None
    backstory: str | None = None
    languages: str | None = None
    proficiencies: str | None = None
    abilities: str | None = None
    inventory: str | None = None
    equipment: str | None = None


class ActionData(PatchModel):
    name: str | None = None
    class_name: str | None = Field(default=None, alias="class")
    race: str | None = None
    level: int | None = None
    experience: int | None = None
    armor_class: int | None = None
    speed: int | None = None
    current_hp: int | None = None
    max_hp: int | None = None
    character_type: CharacterType | None = None
    user_id: str | None = None
    stats: StatsPatch | None = None
    details_patch: DetailsPatch | None = None
    item_patch: ItemPatch | None = None
    learned_spell_patch: LearnedSpellPatch | None = None
    custom_spell_patch: CustomSpellPatch | None = None
    custom_feature_patch: CustomFeaturePatch | None = None

    @model_validator(mode="after")
    def _single_patch_kind(self) -> "ActionData":
        present = [kind for kind in PATCH_KINDS if getattr(self, kind) is not None]
        if len(present) > 1:
            raise ValueError(f"action data carries more than one patch kind: {', '.join(present)}")
        return self

    def patch_kind(self) -> str | None:
        for kind in PATCH_KINDS:
            if getattr(self, kind) is not None:
                return kind
        return None


class Action(PatchModel):
    operation: Operation
    character_id: str | None = Field(default=None, alias="characterId")
    note: str | None = None
    data: ActionData = Field(default_factory=ActionData)


class MutationResult(PatchModel):
    operation: Operation
    character_id: str | None = Field(default=None, alias="characterId")
    status: MutationStatus
    message: str


class AssistantPlan(BaseModel):
    model_config = ConfigDict(extra="forbid")

    reply: str
    actions: list[Action] = Field(default_factory=list, max_length=MAX_ACTIONS)


class SelectedCharacterContext(PatchModel):
    id: str | None = None
    name: str | None = None
    class_name: str | None = Field(default=None, alias="class")
    race: str | None = None
    level: int | None = None
    character_type: CharacterType | None = None


class ClientContext(PatchModel):
    surface: Literal["player", "dm"] | None = None
    locale: str | None = None
    section: str | None = None
    panelMode: str | None = None
    activeTab: str | None = None
    selectedCharacter: SelectedCharacterContext | None = None
    availableActions: list[str] = Field(default_factory=list)
    hints: list[str] = Field(default_factory=list)


@dataclass(slots=True)
class ApplyResult:
    applied: bool
    message: str
    details: dict[str, Any] | None = None


@dataclass(slots=True)
class CharacterSnapshot:
    """Read-only view of a visible character, as the planners and retrieval see it."""

    id: str
    name: str
    user_id: str | None = None
    class_name: str | None = None
    race: str | None = None
    level: int | None = None
    experience: int | None = None
    armor_class: int | None = None
    speed: int | None = None
    current_hp: int | None = None
    max_hp: int | None = None
    character_type: str = "character"
    stats: dict[str, Any] = field(default_factory=dict)
    details: dict[str, Any] = field(default_factory=dict)
