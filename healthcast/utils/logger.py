"""
Centralized Logging Module
Provides consistent logging configuration across the application.
"""

import logging
import sys
import os
from datetime import datetime

from healthcast.utils.config import LOG_DIR, LOG_LEVEL

# Create logs directory if it doesn't exist
os.makedirs(LOG_DIR, exist_ok=True)

# Log format
LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


def get_logger(name: str, level: str = None) -> logging.Logger:
    """
    Creates and returns a configured logger.

    Args:
        name: Logger name (typically __name__)
        level: Optional log level override

    Returns:
        Configured Logger instance
    """
    logger = logging.getLogger(name)

    # Avoid adding handlers multiple times
    if logger.handlers:
        return logger

    log_level = getattr(logging, level or LOG_LEVEL, logging.INFO)
    logger.setLevel(log_level)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    logger.addHandler(console_handler)

    # One file per day
    try:
        log_file = os.path.join(LOG_DIR, f"healthcast_{datetime.now().strftime('%Y%m%d')}.log")
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        logger.addHandler(file_handler)
    except OSError as e:
        logger.warning(f"Could not set up file logging: {e}")

    return logger


def log_training(logger: logging.Logger, scenario: str, metrics: dict, n_samples: int):
    """
    Structured logging for model training events.

    Args:
        logger: Logger instance
        scenario: Scenario name the model belongs to
        metrics: Training metrics dict (final_loss, final_mae, validation_mae, training_seconds)
        n_samples: Number of training samples
    """
    val_mae = metrics.get('validation_mae')
    logger.info(
        f"TRAIN | "
        f"Scenario: {scenario} | "
        f"Samples: {n_samples} | "
        f"Loss: {metrics.get('final_loss', 0):.4f} | "
        f"MAE: {metrics.get('final_mae', 0):.4f} | "
        f"Val MAE: {'N/A' if val_mae is None else f'{val_mae:.4f}'} | "
        f"Time: {metrics.get('training_seconds', 0):.2f}s"
    )


def log_comparison(logger: logging.Logger, comparison: dict):
    """
    Structured logging for ML vs rule-based comparisons.

    Args:
        logger: Logger instance
        comparison: AccuracyComparison as a dict
    """
    context = comparison.get('context') or {}
    logger.info(
        f"COMPARE | "
        f"Location: {context.get('pincode', 'N/A')} | "
        f"Truth: {comparison.get('ground_truth')} | "
        f"ML: {comparison.get('ml_accuracy_percent', 0):.1f}% | "
        f"Rule: {comparison.get('rule_accuracy_percent', 0):.1f}% | "
        f"Winner: {comparison.get('winner')}"
    )


def log_prediction(logger: logging.Logger, scenario: str, summary: str):
    """Structured logging for inference requests."""
    logger.info(f"PREDICTION | Scenario: {scenario} | {summary}")
