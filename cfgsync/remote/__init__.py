"""Remote access: GitHub metadata API and content downloads."""
