import os

# Base directory
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# Paths
STATIC_DIR = os.path.join(BASE_DIR, "static")
DATA_DIR = os.getenv("CBT_DATA_DIR", os.path.join(BASE_DIR, "data"))
DATA_FILE = os.getenv("CBT_DATA_FILE", os.path.join(DATA_DIR, "cbt_data.json"))
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# Server
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))
SESSION_TTL = int(os.getenv("CBT_SESSION_TTL", "7200"))  # exam (1h) + evaluation
MAX_UPLOAD_SIZE = 5 * 1024 * 1024  # 5 MB

# Exam policy
EXAM_DURATION_SECONDS = int(os.getenv("CBT_EXAM_DURATION", "3600"))
TAB_SWITCH_LIMIT = int(os.getenv("CBT_TAB_SWITCH_LIMIT", "3"))
AUTO_SUBMIT_GRACE_SECONDS = float(os.getenv("CBT_AUTO_SUBMIT_GRACE", "5"))
TIME_WARNING_SECONDS = 300  # last 5 minutes shown in red
PASSING_THRESHOLD = 60

CATEGORIES = [
    "براعم وذو الهمم",
    "أشبال وزهرات",
    "كشافة ومرشدات",
    "متقدم ورائدات",
    "جوالة ودليلات",
]

# Credentials (overridable at runtime from the system settings page)
ADMIN_CODE = os.getenv("CBT_ADMIN_CODE", "admin")
ADMIN_PASSWORD = os.getenv("CBT_ADMIN_PASSWORD", "change-me")
LEADER_PASSWORD = os.getenv("CBT_LEADER_PASSWORD", "leader")
MIN_PASSWORD_LENGTH = 6

# Post-exam leader evaluation criteria: (id, label, weight %)
EVALUATION_CRITERIA = [
    ("memorization", "Memorization of verses and prayers", 40),
    ("behavior", "Behavior and commitment", 30),
    ("participation", "Participation and interaction", 20),
    ("scout_chants", "Scout chants", 10),
]
