from .identity import IdentityDependency, require_operator, require_shopper

__all__ = ["IdentityDependency", "require_operator", "require_shopper"]
