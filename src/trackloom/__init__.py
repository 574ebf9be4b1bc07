# SPDX-FileCopyrightText: 2025-present DouglasMacKrell <d.mackrell@gmail.com>
#
# SPDX-License-Identifier: MIT

"""Trackloom - audio file ingestion and sidecar matching pipeline."""

from trackloom.__about__ import __version__

__all__ = ["__version__"]
