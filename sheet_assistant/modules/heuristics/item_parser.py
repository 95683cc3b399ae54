"""Item-card parsing: pasted card text to ``ItemPatch``.

The pipeline is ``segment_item_card`` -> ``extract_block_fields`` ->
``classify_block_type`` -> continuation merge -> ``dedupe_item_description``,
and every patch leaves through ``sanitize_item_patch``.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from sheet_assistant.modules.heuristics.classify import classify_block_type
from sheet_assistant.modules.heuristics.dedupe import dedupe_item_description
from sheet_assistant.modules.heuristics.fields import (
    MAX_ATTACHMENTS,
    extract_block_fields,
    parse_rarity_from_text,
    split_key_value,
)
from sheet_assistant.modules.heuristics.instruction import (
    cleanup_entity_name,
    extract_name_from_instruction,
    extract_structured_item_target_hint,
    parse_description_text,
)
from sheet_assistant.modules.heuristics.keywords import (
    CREATE_VERBS,
    GENERIC_ITEM_REFERENCES,
    ITEM_KEYWORDS,
    PRICE_FRAGMENT_RE,
    has_any,
    label_matches,
)
from sheet_assistant.modules.heuristics.segment import (
    Block,
    ConfigurationBlock,
    is_forbidden_heading,
    is_mutation_command_line,
    is_noise_line,
    normalize_heading_name,
    parse_price_heading,
    segment_item_card,
    split_instruction_lines,
    strip_leading_decorators,
)
from sheet_assistant.modules.patches.coerce import as_integer, clip
from sheet_assistant.modules.patches.sanitize import (
    normalize_item_category,
    sanitize_item_attachment_patch,
    sanitize_item_configuration,
    sanitize_item_patch,
)
from sheet_assistant.modules.patches.schemas import (
    MAX_ACTIONS,
    ItemAttachmentPatch,
    ItemConfigurationPatch,
    ItemPatch,
)
from sheet_assistant.modules.text.matching import find_mentioned_item_name, normalize_for_match

MAX_ITEM_DESCRIPTION = 1200
MAX_ROOT_HEADING_WORDS = 14

_TRAILING_PAREN_RE = re.compile(r"\s*\(([^()]{2,40})\)\s*$")
_SIGNED_NUMBER_RE = re.compile(r"[+-]?\d{1,2}")
_ITEM_LEAD_RE = re.compile(r"\b(?:objeto|item)\b\s*[:=-]?\s*([^\n,.;]{2,140})", re.IGNORECASE)
_QUANTITY_RE = re.compile(r"\b(?:cantidad|qty|x)\s*[:=-]?\s*(\d{1,3})\b", re.IGNORECASE)

_NAME_LABELS = ("nombre", "name")
_RARITY_LABELS = ("rareza", "rarity")
_CATEGORY_LABELS = ("tipo", "type", "categoria", "category")
_ATTUNEMENT_SIGNALS = ("requiere sintonizacion", "requires attunement", "sintonizacion: si", "attunement: yes")
_SPELL_TYPES = ("spell", "cantrip")

_CONFIGURATION_FIELDS: tuple[tuple[tuple[str, ...], str], ...] = (
    (("descripcion", "description"), "description"),
    (("uso", "use", "usage"), "usage"),
    (("dano", "damage"), "damage"),
    (("alcance", "range"), "range"),
    (("bonificacion", "bono", "bonus", "magic bonus"), "magic_bonus"),
)

_EQUIP_SIGNALS = ("equipa", "equipar", "equip ")
_UNEQUIP_SIGNALS = ("desequipa", "unequip", "quitar equipado")
_SIMPLE_CREATE_SIGNALS = ("crea", "crear", "anade", "agrega", "inserta", "mete", "insert ", "add")
_SIMPLE_ITEM_SIGNALS = ("objeto", "item", "inventario")


@dataclass(slots=True)
class RootHeading:
    index: int
    name: str
    price: str | None = None
    rarity: str | None = None


def has_item_keyword_signal(normalized_instruction: str) -> bool:
    return has_any(normalized_instruction, ITEM_KEYWORDS)


def is_generic_item_reference(value: str) -> bool:
    return normalize_for_match(value) in GENERIC_ITEM_REFERENCES


def _split_trailing_paren(name: str) -> tuple[str, str | None, str | None]:
    """Peel a ``(rarity)`` or ``(price)`` suffix off a heading: (name, rarity, price)."""
    match = _TRAILING_PAREN_RE.search(name)
    if not match:
        return name, None, None
    inner = match.group(1).strip()
    head = name[: match.start()].strip()
    if not head:
        return name, None, None
    if PRICE_FRAGMENT_RE.fullmatch(inner):
        return head, None, inner
    rarity = parse_rarity_from_text(inner)
    if rarity:
        return head, rarity, None
    return name, None, None


def _root_from_line(index: int, line: str) -> RootHeading | None:
    price_heading = parse_price_heading(line)
    if price_heading:
        name, rarity, _ = _split_trailing_paren(price_heading.name)
        return RootHeading(index=index, name=name, price=price_heading.price, rarity=rarity)

    candidate = strip_leading_decorators(line)
    pair = split_key_value(candidate)
    if pair:
        label, value = pair
        if value and normalize_for_match(label) in _NAME_LABELS:
            candidate = value
        elif value:
            return None
        else:
            candidate = label
    name = normalize_heading_name(candidate)
    if not name or len(name.split()) > MAX_ROOT_HEADING_WORDS:
        return None
    name, rarity, price = _split_trailing_paren(name)
    return RootHeading(index=index, name=name, price=price, rarity=rarity)


def find_root_heading(lines: Sequence[str]) -> RootHeading | None:
    """First line that can name the item, skipping commands and chat transcript labels."""
    for index, line in enumerate(lines):
        if is_noise_line(line) or is_mutation_command_line(line):
            continue
        if is_forbidden_heading(strip_leading_decorators(line)):
            continue
        root = _root_from_line(index, line)
        if root is not None:
            return root
    return None


def _fold_continuation(previous: ItemAttachmentPatch, block: Block) -> ItemAttachmentPatch | None:
    body = "\n".join(block.lines).strip()
    addition = f"{block.name}: {body}" if body else block.name
    merged = "\n".join(part for part in (previous.description, addition) if part)
    return sanitize_item_attachment_patch({**previous.dump(), "description": clip(merged, 4000)})


def build_block_attachments(blocks: Iterable[Block]) -> list[ItemAttachmentPatch]:
    """Turn segmented blocks into attachments, folding effect continuations into the spell before them."""
    output: list[ItemAttachmentPatch] = []
    for block in blocks:
        if block.continuation and output and output[-1].type in _SPELL_TYPES:
            folded = _fold_continuation(output[-1], block)
            if folded is not None:
                output[-1] = folded
            continue

        extracted = extract_block_fields(block.lines)
        raw: dict[str, Any] = {**extracted.fields, "name": block.name}
        if extracted.description:
            raw["description"] = extracted.description
        raw["type"] = classify_block_type(block.name, "\n".join(block.lines), extracted.fields)
        attachment = sanitize_item_attachment_patch(raw)
        if attachment is None:
            continue
        output.append(attachment)
        if len(output) >= MAX_ATTACHMENTS:
            break
    return output


def _configuration_key(label: str) -> str | None:
    folded = normalize_for_match(label)
    for keys, canonical in _CONFIGURATION_FIELDS:
        if label_matches(folded, keys):
            return canonical
    return None


def build_configuration(configuration: ConfigurationBlock) -> ItemConfigurationPatch | None:
    raw: dict[str, Any] = {"name": configuration.name}
    description_lines: list[str] = []
    for line in configuration.lines:
        pair = split_key_value(line)
        key = _configuration_key(pair[0]) if pair and pair[1] else None
        if pair is None or key is None:
            description_lines.append(line)
            continue
        value = pair[1]
        if key == "magic_bonus":
            bonus = _SIGNED_NUMBER_RE.search(value)
            if bonus:
                raw["magic_bonus"] = int(bonus.group(0))
            else:
                description_lines.append(line)
        elif key == "description":
            description_lines.append(value)
        else:
            raw[key] = value

    attachments = build_block_attachments(configuration.blocks)
    if attachments:
        raw["attachments"] = [attachment.dump() for attachment in attachments]
    description = dedupe_item_description("\n".join(description_lines), attachments)
    if description:
        raw["description"] = description
    return sanitize_item_configuration(raw)


def _metadata_rarity(lines: Iterable[str]) -> str | None:
    for line in lines:
        pair = split_key_value(line)
        if pair is None:
            rarity = parse_rarity_from_text(line)
        elif label_matches(normalize_for_match(pair[0]), _RARITY_LABELS):
            rarity = parse_rarity_from_text(pair[1])
        else:
            continue
        if rarity:
            return rarity
    return None


def _metadata_category(lines: Iterable[str]) -> str | None:
    for line in lines:
        pair = split_key_value(line)
        if pair is None:
            category = normalize_item_category(line)
        elif label_matches(normalize_for_match(pair[0]), _CATEGORY_LABELS):
            category = normalize_item_category(pair[1])
        else:
            continue
        if category:
            return category
    return None


def _has_concrete_change(patch: ItemPatch) -> bool:
    return bool(
        patch.create_if_missing
        or patch.name
        or patch.category
        or patch.rarity
        or patch.description
        or patch.attachments_replace
        or patch.configurations_replace
        or patch.provided("attunement")
    )


def build_item_card_patch(
    body: Sequence[str],
    *,
    target_name: str,
    heading: RootHeading | None,
    create: bool,
) -> ItemPatch | None:
    """Assemble one item patch from the body lines that follow the card heading."""
    item_name = heading.name if heading else target_name
    segments = segment_item_card(list(body), item_name=item_name)
    attachments = build_block_attachments(segments.blocks)
    configurations = [
        configuration
        for configuration in (build_configuration(entry) for entry in segments.configurations)
        if configuration is not None
    ]

    description_lines = list(segments.description_lines)
    if heading and heading.price:
        description_lines.insert(0, f"Precio: {heading.price}")
    nested = [attachment for entry in configurations for attachment in entry.attachments or []]
    description = dedupe_item_description(
        "\n".join(description_lines), attachments + nested, max_len=MAX_ITEM_DESCRIPTION
    )

    raw: dict[str, Any] = {"target_item_name": target_name, "create_if_missing": create}
    if heading and normalize_for_match(heading.name) != normalize_for_match(target_name):
        raw["name"] = heading.name
    category = _metadata_category(segments.metadata_lines)
    if category:
        raw["category"] = category
    rarity = (heading.rarity if heading else None) or _metadata_rarity(segments.metadata_lines)
    if rarity:
        raw["rarity"] = rarity
    if has_any(normalize_for_match("\n".join(segments.description_lines)), _ATTUNEMENT_SIGNALS):
        raw["attunement"] = True
    if description:
        raw["description"] = description
    if attachments:
        raw["attachments_replace"] = [attachment.dump() for attachment in attachments]
    if configurations:
        raw["configurations_replace"] = [configuration.dump() for configuration in configurations]

    patch = sanitize_item_patch(raw)
    if patch is None or not _has_concrete_change(patch):
        return None
    return patch


def parse_structured_item_patch(instruction: str, candidate_item_names: Sequence[str] = ()) -> ItemPatch | None:
    """Parse a pasted item card (heading, metadata, sub-blocks) into one item patch.

    With a create verb the card heading names the item; otherwise an existing
    inventory item mentioned in the text wins over the heading.
    """
    lines = split_instruction_lines(instruction)
    if not lines:
        return None
    wants_create = has_any(normalize_for_match(instruction), CREATE_VERBS)

    command_line = next((line for line in reversed(lines) if is_mutation_command_line(line)), None)
    command_hint = extract_structured_item_target_hint(command_line) if command_line else None
    command_target = find_mentioned_item_name(command_hint, candidate_item_names) if command_hint else None
    mentioned = find_mentioned_item_name(instruction, candidate_item_names)

    root = find_root_heading(lines)
    heading_name = root.name if root else None
    heading_existing = find_mentioned_item_name(heading_name, candidate_item_names) if heading_name else None
    if wants_create:
        target = command_target or heading_name or mentioned or heading_existing
    else:
        target = command_target or mentioned or heading_existing or heading_name
    if not target:
        return None

    body = lines[root.index + 1 :] if root else lines
    return build_item_card_patch(body, target_name=target, heading=root, create=wants_create)


def parse_structured_item_batch_patches(instruction: str) -> list[ItemPatch]:
    """One create patch per ``<Name> – <price> <currency>`` heading, when there are at least two."""
    lines = split_instruction_lines(instruction)
    starts: list[int] = [index for index, line in enumerate(lines) if parse_price_heading(line)]
    if len(starts) < 2:
        return []

    patches: list[ItemPatch] = []
    for position, start in enumerate(starts):
        end = starts[position + 1] if position + 1 < len(starts) else len(lines)
        root = _root_from_line(start, lines[start])
        if root is None:
            continue
        patch = build_item_card_patch(lines[start + 1 : end], target_name=root.name, heading=root, create=True)
        if patch is not None:
            patches.append(patch)
        if len(patches) >= MAX_ACTIONS:
            break
    return patches


def parse_simple_item_patch(instruction: str, candidate_item_names: Sequence[str] = ()) -> ItemPatch | None:
    """Single-line item requests: equip/unequip by name or create a named item."""
    normalized = normalize_for_match(instruction)
    mentioned = find_mentioned_item_name(instruction, candidate_item_names)
    hint = extract_structured_item_target_hint(instruction)
    safe_hint = hint if hint and not is_generic_item_reference(hint) else None
    lead = _ITEM_LEAD_RE.search(instruction)
    item_name = (
        mentioned
        or safe_hint
        or extract_name_from_instruction(instruction, 120)
        or (cleanup_entity_name(lead.group(1), 120) if lead else None)
    )
    if not item_name:
        return None

    wants_equip = has_any(normalized, _EQUIP_SIGNALS)
    wants_unequip = has_any(normalized, _UNEQUIP_SIGNALS)
    if wants_equip or wants_unequip:
        return sanitize_item_patch(
            {
                "target_item_name": item_name,
                "create_if_missing": False,
                "equippable": True,
                "equipped": wants_equip and not wants_unequip,
            }
        )

    if not (has_any(normalized, _SIMPLE_CREATE_SIGNALS) and has_any(normalized, _SIMPLE_ITEM_SIGNALS)):
        return None
    raw: dict[str, Any] = {"target_item_name": item_name, "create_if_missing": True}
    quantity = _QUANTITY_RE.search(instruction)
    if quantity:
        raw["quantity"] = as_integer(quantity.group(1), 0, 999)
    description = parse_description_text(instruction)
    if description:
        raw["description"] = description
    category = normalize_item_category(instruction)
    if category:
        raw["category"] = category
    rarity = parse_rarity_from_text(instruction)
    if rarity:
        raw["rarity"] = rarity
    return sanitize_item_patch(raw)
