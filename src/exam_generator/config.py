"""
Configuration file for the Exam Question Generator.

Modify these values to customize the question generation behavior.
"""

# Model Configuration
MODEL_NAME = "gemini-2.5-flash"
GENERATION_TEMPERATURE = 0.7

# Output Configuration
OUTPUT_DIR = "output"
UNITS_FILE = "units.json"
QUESTIONS_OUTPUT_FILE = "generated_questions.json"
MATERIALS_DIR = "files"
USAGE_LOG_DIR = "debug_logs/token_usage"

# Question Generation Settings
OVERGENERATION_FACTOR = 1.5
DEFAULT_DIFFICULTY = "balanced"
MAX_CONCURRENT_UNITS = 3
RUN_WARNING_CAP = 10

# Retry Settings (transport failures only)
MAX_GENERATION_ATTEMPTS = 3
BACKOFF_INITIAL_SECONDS = 1.0
BACKOFF_MULTIPLIER = 2.0
BACKOFF_MAX_SECONDS = 30.0
RETRYABLE_ERROR_MARKERS = [
    "rate limit",
    "quota",
    "timeout",
    "timed out",
    "econnreset",
    "etimedout",
    "enotfound",
    "429",
    "500",
    "503",
    "fetch failed",
    "network",
]

# Gemini File API / call ceilings
GENERATION_TIMEOUT_SECONDS = 300.0
FILE_POLL_INTERVAL_SECONDS = 2.0
FILE_POLL_MAX_ATTEMPTS = 30
DOWNLOAD_TIMEOUT_SECONDS = 60.0

# Normalizer diagnostics
DIAGNOSTIC_PREVIEW_CHARS = 1000
DIAGNOSTIC_CONTEXT_CHARS = 100

# Pricing (USD per 1,000,000 tokens)
USD_TO_LOCAL_RATE = 83.0
LOCAL_CURRENCY = "INR"
DEFAULT_PRICING_MODEL = "gemini-2.5-flash-lite"
MODEL_PRICING = {
    "gemini-3-pro-preview": {
        "input": {"standard": 2.00, "batch": 1.00},
        "output": {"standard": 12.00, "batch": 6.00},
        "context_cache": 0.20,
    },
    "gemini-3-flash-preview": {
        "input": {"standard": 0.50, "batch": 0.25},
        "output": {"standard": 3.00, "batch": 1.50},
        "context_cache": 0.05,
    },
    "gemini-2.5-pro": {
        "input": {"standard": 1.25, "batch": 0.625},
        "output": {"standard": 10.00, "batch": 5.00},
        "context_cache": 0.125,
    },
    "gemini-2.5-flash": {
        "input": {"standard": 0.30, "batch": 0.15},
        "output": {"standard": 2.50, "batch": 1.25},
        "context_cache": 0.03,
    },
    "gemini-2.5-flash-lite": {
        "input": {"standard": 0.10, "batch": 0.05},
        "output": {"standard": 0.40, "batch": 0.20},
        "context_cache": 0.01,
    },
    "gemini-2.0-flash": {
        "input": {"standard": 0.10, "batch": 0.05},
        "output": {"standard": 0.40, "batch": 0.20},
        "context_cache": 0.025,
    },
    "gemini-2.0-flash-lite": {
        "input": {"standard": 0.075, "batch": 0.0375},
        "output": {"standard": 0.30, "batch": 0.15},
        "context_cache": 0.019,
    },
}

# System Instruction
SYSTEM_INSTRUCTION = """You are an expert competitive-exam question paper setter working for a teaching institute.

Your task is to generate high-quality multiple-choice questions from the study materials provided to you.

IMPORTANT RULES:
1. Only generate questions whose content is supported by the provided study materials
2. Each question must have exactly 4 options keyed "(1)", "(2)", "(3)", "(4)"
3. Follow the quantitative protocol in the request exactly (archetype and structural form counts)
4. Never refer to the study materials, notes or sources inside a question
5. Provide a clear explanation for every correct answer
6. Return only JSON in the requested structure, with no text before or after it
"""
