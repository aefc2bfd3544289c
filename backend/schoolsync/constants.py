"""Storage keys and shared tokens for the portal data layer."""

CURRENT_USER_KEY = "josias_current_user"
USERS_KEY = "josias_users"
MESSAGES_KEY = "josias_messages"
SURVEY_KEY_PREFIX = "survey_"

# Messages addressed to this token land in every teacher's inbox.
TEACHER_INBOX = "teacher"

SUBJECTS = ("Lenguaje", "Historia", "Matemáticas", "Inglés", "Ciencias")

COURSES = (
    "1ro Básico",
    "2do Básico",
    "3ro Básico",
    "4to Básico",
    "5to Básico",
    "6to Básico",
    "7mo Básico",
    "8vo Básico",
)


def survey_key(name: str) -> str:
    return f"{SURVEY_KEY_PREFIX}{name}"
