RANDOM_SEED = 42

# ===== Raw Data =====
URL_BASE = "https://d396qusza40orc.cloudfront.net/predmachlearn/"
TRAIN_FILE = "pml-training.csv"
TEST_FILE = "pml-testing.csv"
NA_VALUES = ["", "NA"]

## dataframe processing
LABEL_COL = "classe"
ID_COL = "problem_id"
N_METADATA_COLS = 7     # X, user_name, 3x timestamp, new_window, num_window
CLASSES = ["A", "B", "C", "D", "E"]
MISSING_THRESHOLD = 0.95

# ===== Diagnostics =====
CORR_METHOD = "spearman"
CORR_CUTOFF = 0.75
## near zero variance
FREQ_CUT = 95 / 5
UNIQUE_CUT = 10

# ===== Model Training =====
VAL_SIZE = 0.2
VARIANCE_TARGET = 0.95
N_ESTIMATORS = 250
MTRY_GRID = list(range(1, 11))
CV_SPLITS = 10
CV_REPEATS = 3
N_JOBS = -2     # all cores but one
