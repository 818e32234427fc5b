#!/usr/bin/env python3
"""
Salutation module.

A single action that picks a salutation for a gender. Used on its own and as
a child module of ``simple_store``.
"""

from storeclass import create_module


class SalutationModule:
    male_salutation = "Mr."
    female_salutation = "Mrs."

    async def salute(self, payload):
        gender = payload.get("gender")
        if gender == "male":
            return self.male_salutation
        if gender == "female":
            return self.female_salutation
        return "dear"


salutation_module = create_module(SalutationModule, "salutation")
