#!/usr/bin/env python3
"""
Nested store example: a root getter reading state of a child module.
"""

from storeclass import create_module, use_module


class Salutations:
    salutation = "Mrs."


salutations_module = create_module(Salutations, "salutations")


class RootModule:
    prename = "Jane"
    lastname = "Doe"

    @property
    def _nested(self):
        return use_module(salutations_module, self)

    @property
    def salutation(self):
        return "Hello " + self._nested.salutation + " " + self.prename + " " + self.lastname


root_module = create_module(RootModule, "", modules=[salutations_module])
