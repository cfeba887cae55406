# REST endpoints over the design history.
