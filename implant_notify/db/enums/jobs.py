"""Scheduled job types."""

from enum import Enum


class JobType(str, Enum):
    DIGEST = "digest"
    FLAG_DETECTION = "flag_detection"
    ISQ_FOLLOWUP_SWEEP = "isq_followup_sweep"
