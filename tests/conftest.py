import os

# Rich truncates table cells to the terminal width; give CLI output room so
# the tests do not depend on the width of the terminal running them.
os.environ.setdefault("COLUMNS", "200")
