"""Account and space storages, and the helpers they share."""