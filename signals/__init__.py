# Copyright (c) 2026 Nenad Vasic. All rights reserved.
# Licensed under the Business Source License 1.1 (BSL-1.1)
# See LICENSE file in the project root for full license text.

"""Hearth signals - dated signals from journal entries and their lifecycle."""
from .extractor import extract_signals
from .processor import process_entry_signals, reprocess_signals_on_edit
from .lifecycle import (
    create_signal_state, get_signal_state, transition_signal_state, promote_signal,
)
from .exclusions import add_exclusion, is_pattern_excluded
