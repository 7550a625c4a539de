"""Report viewer: small web servers that render a member's report from a CRM or datastore."""

__version__ = "1.0.0"
