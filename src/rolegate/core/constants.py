"""Package-wide constants.

Column lengths and sentinel values shared by the models, the
resolution query and the write-side service.
"""

# String field lengths
MAX_ABILITY_NAME_LENGTH = 150
MAX_ROLE_NAME_LENGTH = 150
MAX_ENTITY_TYPE_LENGTH = 150
MAX_ENTITY_ID_LENGTH = 64
MAX_TITLE_LENGTH = 255
MAX_EMAIL_LENGTH = 255
MAX_NAME_LENGTH = 255
MAX_GRANTEE_KIND_LENGTH = 20

# Wildcard for ability names and entity types
WILDCARD = "*"

# Ownership convention: attribute on target models holding the owner's id
DEFAULT_OWNERSHIP_ATTRIBUTE = "owner_id"

# Accepted values for role membership checks
ROLE_BOOLEANS = ("or", "and", "not")
