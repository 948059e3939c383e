# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Hearth nexus - life-domain gaps, gentle prompts and insight rotation."""
from .gaps import compute_gap_score, detect_gaps
from .prompts import generate_gap_prompt
from .safety import should_show_gap_prompt, filter_gaps_for_safety
from .rotation import schedule_insight_reveals, get_insight_counts
