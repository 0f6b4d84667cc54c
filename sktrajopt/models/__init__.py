from sktrajopt.models.five_bar import FiveBarLinkage


__all__ = [
    'FiveBarLinkage',
]
