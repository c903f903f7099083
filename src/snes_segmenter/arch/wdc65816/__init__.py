# src/snes_segmenter/arch/wdc65816/__init__.py
"""
WDC 65816 Architecture Package
"""
from .state import ProcessorWidthState, RESET_STATE
