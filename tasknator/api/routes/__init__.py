from . import assets, audits, exports, jobs, plans

__all__ = ["assets", "audits", "exports", "jobs", "plans"]
