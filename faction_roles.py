from enum import IntEnum


class FactionRole(IntEnum):
    NONE = -1
    MEMBER = 0
    OFFICER = 1
    VICE_LEADER = 2
    LEADER = 3


ROLE_NAMES = {
    FactionRole.NONE: "None",
    FactionRole.MEMBER: "Member",
    FactionRole.OFFICER: "Officer",
    FactionRole.VICE_LEADER: "Vice Leader",
    FactionRole.LEADER: "Leader",
}

# Alle Schreibweisen, die Plugin, SPA und alte Daten für Rollen verwenden
_ROLE_ALIASES = {
    "none": FactionRole.NONE,
    "member": FactionRole.MEMBER,
    "officer": FactionRole.OFFICER,
    "viceleader": FactionRole.VICE_LEADER,
    "vice_leader": FactionRole.VICE_LEADER,
    "vice leader": FactionRole.VICE_LEADER,
    "vice-leader": FactionRole.VICE_LEADER,
    "leader": FactionRole.LEADER,
}

PERMISSION_KEYS = (
    "canInvite",
    "canAcceptRequests",
    "canManageQuests",
    "canPromoteOfficer",
    "canPromoteViceLeader",
    "canTransferLeadership",
    "canSetAliases",
    "canSetIcon",
)


def normalize_role(value):
    """
    Converts any known role representation into a FactionRole.
    Accepts ints, numeric strings and role names; returns None when the
    value does not name one of the five levels.
    """
    if isinstance(value, FactionRole):
        return value
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, int):
        level = value
    elif isinstance(value, float):
        if not value.is_integer():
            return None
        level = int(value)
    elif isinstance(value, str):
        raw = value.strip()
        try:
            level = int(raw)
        except ValueError:
            return _ROLE_ALIASES.get(raw.lower())
    else:
        return None
    try:
        return FactionRole(level)
    except ValueError:
        return None


def role_from_db(value):
    """Rollen-Spalte lesen: unbrauchbare Werte zählen wie im Plugin als Member."""
    role = normalize_role(value)
    return FactionRole.MEMBER if role is None else role


def role_name(level):
    role = normalize_role(level)
    if role is None:
        return ROLE_NAMES[FactionRole.MEMBER]
    return ROLE_NAMES[role]


def role_display(level, aliases=None):
    role = normalize_role(level)
    if aliases and role is not None:
        alias = aliases.get(str(int(role)))
        if alias and alias.strip():
            return alias.strip()
    return role_name(level)


def build_permissions(role_level):
    role = normalize_role(role_level)
    if role is None or role < FactionRole.MEMBER:
        return {key: False for key in PERMISSION_KEYS}

    return {
        "canInvite": role >= FactionRole.OFFICER,
        "canAcceptRequests": role >= FactionRole.OFFICER,
        "canManageQuests": role >= FactionRole.VICE_LEADER,
        "canPromoteOfficer": role >= FactionRole.VICE_LEADER,
        "canPromoteViceLeader": role == FactionRole.LEADER,
        "canTransferLeadership": role == FactionRole.LEADER,
        "canSetAliases": role == FactionRole.LEADER,
        "canSetIcon": role == FactionRole.LEADER,
    }


def can_set_role(permissions, target_role):
    target = normalize_role(target_role)
    if target == FactionRole.MEMBER:
        # Degradieren darf, wer Officer oder Vice Leader ernennen darf
        return permissions["canPromoteOfficer"] or permissions["canPromoteViceLeader"]
    if target == FactionRole.OFFICER:
        return permissions["canPromoteOfficer"]
    if target == FactionRole.VICE_LEADER:
        return permissions["canPromoteViceLeader"]
    if target == FactionRole.LEADER:
        return permissions["canTransferLeadership"]
    return False


def effective_role(role_level, is_leader):
    # Wer in factions.leader_id steht, hat Leader-Rechte, egal was in members steht
    role = role_from_db(role_level)
    return FactionRole.LEADER if is_leader else role


# Nur der Spieler in factions.leader_id, nicht jede gespeicherte Rolle 3
LEADER_ONLY_PERMISSIONS = ("canPromoteViceLeader", "canTransferLeadership", "canSetAliases", "canSetIcon")


def member_permissions(role_level, is_leader):
    """
    Rechte eines Fraktionsmitglieds. Basis ist die effektive Rolle; die
    Leader-Rechte hängen allein an leader_id, damit ein abgelöster Leader
    mit Rolle 3 die Führung nicht zurückholen kann.
    """
    permissions = build_permissions(effective_role(role_level, is_leader))
    for key in LEADER_ONLY_PERMISSIONS:
        permissions[key] = bool(is_leader)
    return permissions
