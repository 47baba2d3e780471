"""Role-specific profile variants.

Each role carries only its own fields. Profiles are built through
build_profile, which validates the fields for that role and rejects fields
that belong to another one.
"""

from dataclasses import dataclass, field
from typing import Any

from versenest.core.errors import ValidationError
from versenest.models.user import Role, User

GENRES = frozenset(
    {
        "Lyrical",
        "Narrative",
        "Sonnet",
        "Haiku",
        "Fantasy",
        "Free Verse",
        "Drama",
        "Epic",
        "Comedy",
        "Romance",
        "Mystery",
        "Horror",
        "Science Fiction",
        "Historical",
        "Other",
    }
)

MOODS = frozenset(
    {
        "Reflective",
        "Uplifting",
        "Melancholic",
        "Romantic",
        "Adventurous",
        "Mystical",
        "Humorous",
        "Dramatic",
        "Peaceful",
        "Energetic",
    }
)

MAX_MOOD_PREFERENCES = 5
MAX_BIO_LENGTH = 500


@dataclass(frozen=True)
class ReaderProfile:
    full_name: str
    bio: str | None = None
    genres: tuple[str, ...] = field(default_factory=tuple)
    mood_preferences: tuple[str, ...] = field(default_factory=tuple)
    role: Role = field(default=Role.READER, init=False)


@dataclass(frozen=True)
class WriterProfile:
    full_name: str
    pen_name: str
    bio: str | None = None
    genres: tuple[str, ...] = field(default_factory=tuple)
    role: Role = field(default=Role.WRITER, init=False)


@dataclass(frozen=True)
class AdminProfile:
    full_name: str
    bio: str | None = None
    role: Role = field(default=Role.ADMIN, init=False)


Profile = ReaderProfile | WriterProfile | AdminProfile

_FIELDS_BY_ROLE = {
    Role.READER: {"bio", "genres", "mood_preferences"},
    Role.WRITER: {"pen_name", "bio", "genres"},
    Role.ADMIN: {"bio"},
}


def _clean_name(value: str | None, label: str, min_length: int, max_length: int) -> str:
    name = (value or "").strip()
    if len(name) < min_length:
        raise ValidationError(f"{label} must be at least {min_length} characters long")
    if len(name) > max_length:
        raise ValidationError(f"{label} must not exceed {max_length} characters")
    return name


def _clean_choices(values: Any, allowed: frozenset[str], label: str) -> tuple[str, ...]:
    items = tuple(dict.fromkeys(values or ()))
    unknown = [v for v in items if v not in allowed]
    if unknown:
        raise ValidationError(f"Unknown {label}: {', '.join(unknown)}")
    return items


def _clean_bio(bio: str | None) -> str | None:
    if bio is None:
        return None
    bio = bio.strip()
    if len(bio) > MAX_BIO_LENGTH:
        raise ValidationError(f"Bio must not exceed {MAX_BIO_LENGTH} characters")
    return bio or None


def build_profile(role: Role | str, full_name: str, **fields: Any) -> Profile:
    """Validate and build the profile variant for a role.

    Raises ValidationError for missing required fields, values outside the
    allowed vocabularies, or fields that the role does not carry.
    """
    try:
        role = Role(role)
    except ValueError as e:
        raise ValidationError(f"Unknown role: {role}") from e

    supplied = {k for k, v in fields.items() if v not in (None, [], (), "")}
    foreign = supplied - _FIELDS_BY_ROLE[role]
    if foreign:
        raise ValidationError(
            f"Fields not allowed for role {role.value}: {', '.join(sorted(foreign))}"
        )

    name = _clean_name(full_name, "Full name", 1, 100)
    bio = _clean_bio(fields.get("bio"))

    if role is Role.WRITER:
        if not fields.get("pen_name"):
            raise ValidationError("Pen name is required for writers")
        return WriterProfile(
            full_name=name,
            pen_name=_clean_name(fields["pen_name"], "Pen name", 2, 50),
            bio=bio,
            genres=_clean_choices(fields.get("genres"), GENRES, "genres"),
        )

    if role is Role.READER:
        moods = _clean_choices(fields.get("mood_preferences"), MOODS, "mood preferences")
        if len(moods) > MAX_MOOD_PREFERENCES:
            raise ValidationError(
                f"Readers can have at most {MAX_MOOD_PREFERENCES} mood preferences"
            )
        return ReaderProfile(
            full_name=name,
            bio=bio,
            genres=_clean_choices(fields.get("genres"), GENRES, "genres"),
            mood_preferences=moods,
        )

    return AdminProfile(full_name=name, bio=bio)


def apply_profile(user: User, profile: Profile) -> None:
    """Write a profile onto a user row, clearing fields of other roles."""
    user.role = profile.role.value
    user.full_name = profile.full_name
    user.bio = profile.bio
    match profile:
        case WriterProfile():
            user.pen_name = profile.pen_name
            user.genres = list(profile.genres)
            user.mood_preferences = []
        case ReaderProfile():
            user.pen_name = None
            user.genres = list(profile.genres)
            user.mood_preferences = list(profile.mood_preferences)
        case AdminProfile():
            user.pen_name = None
            user.genres = []
            user.mood_preferences = []


def profile_of(user: User) -> Profile:
    """Read the stored profile of a user as its role variant."""
    role = Role(user.role)
    if role is Role.WRITER:
        return WriterProfile(
            full_name=user.full_name,
            pen_name=user.pen_name or user.full_name,
            bio=user.bio,
            genres=tuple(user.genres or ()),
        )
    if role is Role.READER:
        return ReaderProfile(
            full_name=user.full_name,
            bio=user.bio,
            genres=tuple(user.genres or ()),
            mood_preferences=tuple(user.mood_preferences or ()),
        )
    return AdminProfile(full_name=user.full_name, bio=user.bio)


def convert_profile(user: User, new_role: Role, pen_name: str | None = None) -> Profile:
    """Profile for a role change, keeping whatever the new role can carry."""
    current = profile_of(user)
    fields: dict[str, Any] = {"bio": current.bio}
    if new_role is Role.WRITER:
        fields["pen_name"] = pen_name or user.pen_name
        fields["genres"] = list(getattr(current, "genres", ()))
    elif new_role is Role.READER:
        fields["genres"] = list(getattr(current, "genres", ()))
        fields["mood_preferences"] = list(getattr(current, "mood_preferences", ()))
    return build_profile(new_role, current.full_name, **fields)
