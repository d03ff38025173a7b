"""Application constants - all magic numbers centralized."""

# Lesson structure
MIN_LESSON_NODES = 5
MAX_LESSON_NODES = 25
NODES_PER_BLOCK = 3  # One recall cycle per consecutive block of 3 nodes
NODE_COUNT_BY_DIFFICULTY = {
    "beginner": (5, 8),
    "intermediate": (10, 15),
    "advanced": (18, 25),
}

# Recall steps (index into a cycle's step space)
RECALL_STEP_RETENTION = 0  # Re-test previous block's middle node (cycles > 1)
RECALL_STEP_CLOZE = 1  # Partial recall of the current middle node
RECALL_STEP_BACKWARD = 2  # Full recall of block start, middle as hint
RECALL_STEP_FORWARD = 3  # Full recall of block end, middle as hint
RECALL_STEP_CAPSTONE = 4  # Final cycle only

RECALL_CONTEXT_MESSAGES = {
    RECALL_STEP_RETENTION: "Let's review the previous topic...",
    RECALL_STEP_CLOZE: "Fill in the blanks...",
    RECALL_STEP_BACKWARD: "Recall the start of this section...",
    RECALL_STEP_FORWARD: "Recall the end of this section...",
    RECALL_STEP_CAPSTONE: "Final review of this section...",
}

# Grading thresholds (score bands, advisory only)
SCORE_EXCELLENT = 0.9  # 0.9-1.0: Captures all key concepts
SCORE_GOOD = 0.7  # 0.7-0.89: Minor gaps in connections
SCORE_PARTIAL = 0.4  # 0.4-0.69: Missing key details
SCORE_INCORRECT = 0.3  # below: Significant gaps or misconceptions

# Reporting
WEAK_NODE_THRESHOLD = 0.7  # Average score below this marks a node for review
GRADE_POINTS = {
    "A+": 4.3, "A": 4.0, "A-": 3.7,
    "B+": 3.3, "B": 3.0, "B-": 2.7,
    "C+": 2.3, "C": 2.0, "C-": 1.7,
    "D": 1.0, "F": 0.0,
}

# LLM settings
DEFAULT_LLM_MODEL = "deepseek-chat"
