"""Validation of resource quotas, accounts, account quotas, template instances and spaces."""