"""Request serving: dispatch, response formatting, locale, error handling."""
