# SPDX-License-Identifier: AGPL-3.0-or-later
"""YAML reference tables loaded by :mod:`extdetect.tables`."""
