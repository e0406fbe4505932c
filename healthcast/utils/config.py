"""
Runtime Configuration
Loads settings from the environment (and an optional .env file).

Policy constants such as the risk inclusion threshold or the cases-per-doctor
capacity live here so deployments can tune them without code changes. Every
component that uses one also accepts an explicit override.
"""

import os
from dotenv import load_dotenv

load_dotenv()

# Paths
BASE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))  # healthcast/
MODEL_DIR = os.getenv('MODEL_DIR', os.path.join(BASE_DIR, 'ml_models', 'artifacts'))
LOG_DIR = os.getenv('LOG_DIR', os.path.join(BASE_DIR, 'logs'))
LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

# Rule-based scoring
RISK_INCLUSION_THRESHOLD = float(os.getenv('RISK_INCLUSION_THRESHOLD', '0.25'))

# Accuracy validation
TIE_TOLERANCE = float(os.getenv('TIE_TOLERANCE', '2.0'))
CASES_PER_DOCTOR = int(os.getenv('CASES_PER_DOCTOR', '50'))

# Normalization
NORMALIZATION_EPSILON = float(os.getenv('NORMALIZATION_EPSILON', '1e-7'))

# Minimum training samples per scenario
MIN_ADMISSION_SAMPLES = int(os.getenv('MIN_ADMISSION_SAMPLES', '30'))
MIN_DISEASE_SAMPLES = int(os.getenv('MIN_DISEASE_SAMPLES', '100'))
MIN_GOVT_SAMPLES = int(os.getenv('MIN_GOVT_SAMPLES', '10'))

# Synthetic disease training set size
SYNTHETIC_DISEASE_SAMPLES = int(os.getenv('SYNTHETIC_DISEASE_SAMPLES', '2000'))

# Optional seed for reproducible training runs
_seed = os.getenv('TRAINING_SEED')
TRAINING_SEED = int(_seed) if _seed else None

# Values substituted for optional weather fields at ML inference time
NOMINAL_WEATHER = {
    'wind_speed': float(os.getenv('NOMINAL_WIND_SPEED', '10')),
    'uv_index': float(os.getenv('NOMINAL_UV_INDEX', '5')),
    'pressure': float(os.getenv('NOMINAL_PRESSURE', '1013')),
    'weather_code': float(os.getenv('NOMINAL_WEATHER_CODE', '0')),
}
