"""Utility modules for Chirper."""

from chirper.utils.magic_bytes import ImageCheck, check_image, sniff_image_type


__all__ = ["ImageCheck", "check_image", "sniff_image_type"]
