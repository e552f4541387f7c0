"""
PDF Structure Standards and Role Families
Based on ISO 32000-1 (PDF 1.7) and ISO 14289-1 (PDF/UA-1)
Groups the standard structure types into the families the tag normalizer reasons about
"""

import re
from typing import Dict, Mapping, Optional

# Standard PDF structure types as defined in ISO 32000-1:2008, 14.8.4
STANDARD_STRUCTURE_TYPES = {
    # Grouping elements
    'Document': 'Root element of document tag tree',
    'Part': 'Large division of document',
    'Art': 'Article - self-contained body of text',
    'Sect': 'Generic container, section of document',
    'Div': 'Generic block-level element',

    # Paragraph-like elements
    'BlockQuote': 'Block of quoted text',
    'Caption': 'Brief description of table or figure',
    'TOC': 'Table of contents',
    'TOCI': 'Individual TOC item',
    'Index': 'Index section',
    'NonStruct': 'Non-structural grouping',
    'Private': 'Private application data',

    # Heading elements
    'H': 'Generic heading',
    'H1': 'Level 1 heading',
    'H2': 'Level 2 heading',
    'H3': 'Level 3 heading',
    'H4': 'Level 4 heading',
    'H5': 'Level 5 heading',
    'H6': 'Level 6 heading',

    # Paragraph elements
    'P': 'Paragraph',

    # List elements
    'L': 'List',
    'LI': 'List item',
    'Lbl': 'List item label',
    'LBody': 'List item body',

    # Table elements
    'Table': 'Table',
    'TR': 'Table row',
    'TH': 'Table header cell',
    'TD': 'Table data cell',
    'THead': 'Table header row group',
    'TBody': 'Table body row group',
    'TFoot': 'Table footer row group',

    # Inline elements
    'Span': 'Generic inline element',
    'Quote': 'Inline quoted text',
    'Note': 'Footnote or endnote',
    'Reference': 'Citation reference',
    'BibEntry': 'Bibliography entry',
    'Code': 'Computer code',
    'Link': 'Hyperlink',
    'Annot': 'Annotation',

    # Illustration elements
    'Figure': 'Figure or image',
    'Formula': 'Mathematical formula',
    'Form': 'Form widget annotation'
}

# List roles
LIST = 'L'
LIST_ITEM = 'LI'
LIST_LABEL = 'Lbl'
LIST_BODY = 'LBody'
CAPTION = 'Caption'
DOCUMENT = 'Document'

# Children an L may hold besides LI
LIST_EXTRA_CHILDREN = frozenset({CAPTION})

# Stray children of an L that read as a simple list item body
LIST_ITEM_BODY_ROLES = frozenset({'P', 'Span', 'Div', 'Figure', 'Link', 'Code', 'Quote'})

# Elements that delimit sections; a heading inside one of these starts a new context
SECTIONING_ROLES = frozenset({'Document', 'Part', 'Art', 'Sect'})

# Containers without role-specific semantics, candidates for flattening
DEFAULT_GROUPING_ROLES = frozenset({'Div', 'NonStruct'})

# Top-level containers that the original tagging tools emit in place of Document
ROOT_CONTAINER_ROLES = frozenset({'Sect', 'Part', 'Art'})

# Structure element keys that make a grouping node semantically meaningful
DISTINGUISHING_ATTRIBUTES = frozenset({'Lang', 'Alt', 'ActualText', 'E', 'A', 'C', 'ID'})

_HEADING_PATTERN = re.compile(r'^H([1-6])$')

# RoleMap chains longer than this are treated as broken
MAX_ROLEMAP_DEPTH = 16


def clean_role(structure_type) -> str:
    """
    Normalize a structure type to its bare name

    Args:
        structure_type: Structure type, with or without the leading '/'

    Returns:
        Name without the leading '/' (e.g., 'H1')
    """
    if structure_type is None:
        return ''
    return str(structure_type).lstrip('/')


def is_standard_type(structure_type: str) -> bool:
    """
    Check if a structure type is a standard PDF type

    Args:
        structure_type: Structure type to check

    Returns:
        True if standard, False otherwise
    """
    return clean_role(structure_type) in STANDARD_STRUCTURE_TYPES


def resolve_role(structure_type: Optional[str], role_map: Optional[Mapping[str, str]] = None) -> Optional[str]:
    """
    Resolve a structure type through the RoleMap to the standard type it stands for

    Standard types are returned unchanged (PDF/UA forbids remapping them). Custom
    types follow the RoleMap chain until a standard type is reached; a broken or
    circular chain resolves to the last custom name seen.

    Args:
        structure_type: Raw structure type (e.g., 'Heading1')
        role_map: Mapping of custom type to target type, names without '/'

    Returns:
        The effective role name, or None for content leaves
    """
    if structure_type is None:
        return None

    role = clean_role(structure_type)
    if not role_map or role in STANDARD_STRUCTURE_TYPES:
        return role

    seen = {role}
    for _ in range(MAX_ROLEMAP_DEPTH):
        target = role_map.get(role)
        if not target:
            return role
        target = clean_role(target)
        if target in seen:
            return role
        role = target
        if role in STANDARD_STRUCTURE_TYPES:
            return role
        seen.add(role)
    return role


def heading_level(role: Optional[str]) -> Optional[int]:
    """Return 1-6 for H1..H6, None for anything else (including the generic H)."""
    if not role:
        return None
    match = _HEADING_PATTERN.match(role)
    return int(match.group(1)) if match else None


def heading_role(level: int) -> str:
    """Return the standard heading role for a level, clamped to H1..H6."""
    return f'H{max(1, min(6, int(level)))}'


def parse_role_list(value: Optional[str]) -> Optional[frozenset]:
    """Parse a comma separated role list ('Div, NonStruct') into a set of bare names."""
    if value is None:
        return None
    roles = {clean_role(item.strip()) for item in str(value).split(',')}
    roles.discard('')
    return frozenset(roles) if roles else None


def role_map_from_dictionary(role_map) -> Dict[str, str]:
    """
    Convert a pikepdf RoleMap dictionary into a plain mapping of bare names

    Args:
        role_map: RoleMap dictionary from the StructTreeRoot (or None)

    Returns:
        Dictionary such as {'Heading1': 'H1'}
    """
    if role_map is None:
        return {}
    mapping: Dict[str, str] = {}
    for key, value in role_map.items():
        mapping[clean_role(key)] = clean_role(value)
    return mapping
