"""Constants shared by the tests."""

PASSWORDS = {
    "password": ["create_any", "update_own", "custom_name"],
    "admin": ["create_any", "update_any", "custom_name"],
    "links-only": ["create_link"],
}
