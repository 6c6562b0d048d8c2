"""Description of the features available to a caller."""
from shareit.classifier import ContentPolicy
from shareit.models import Abilities, NameFeatures, ShareKind
from shareit.permissions import Authorizer


def load_abilities(
    authorizer: Authorizer,
    policy: ContentPolicy,
    login: bool,
    min_name_length: int,
    max_name_length: int,
) -> Abilities:
    permissions = authorizer.permissions()
    custom_names = None
    if permissions.custom_name:
        custom_names = NameFeatures(min_length=min_name_length, max_length=max_name_length)
    return Abilities(
        login=login,
        create_file=permissions.can_create(ShareKind.FILE),
        create_paste=permissions.can_create(ShareKind.PASTE),
        create_link=permissions.can_create(ShareKind.LINK),
        update_own=permissions.update_own,
        update_any=permissions.update_any,
        custom_names=custom_names,
        mime_types_whitelist=list(policy.allowed_mime_types),
        mime_types_blacklist=list(policy.disallowed_mime_types),
        link_schemes=list(policy.allowed_link_schemes),
        highlighting_languages=list(policy.highlighting_languages),
    )
