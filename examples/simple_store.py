#!/usr/bin/env python3
"""
Simple store example.

Root module with state, two getters, a mutation and an action that calls into
the ``salutation`` child module through a reserved helper.

Run directly to see it in action::

    python examples/simple_store.py
"""

import asyncio
import logging

from storeclass import Store, create_module, mutation, setup_logging, use_module

from salutation import salutation_module

logger = logging.getLogger(__name__)


class RootModule:
    line_ending = "\n"
    prename = "Jane"
    lastname = "Doe"

    @property
    def _salutation(self):
        return use_module(salutation_module, self)

    @property
    def text(self):
        return "Hello " + self.fullname

    @property
    def fullname(self):
        return self.prename + " " + self.lastname

    @mutation
    def set_name(self, value):
        self.prename = value["prename"]
        self.lastname = value["lastname"]

    async def action(self, payload):
        salute = await self._salutation.salute({"gender": "male"})
        return payload["hello"] + " " + salute + " " + self.fullname + "!" + self.line_ending


root_module = create_module(RootModule, "", modules=[salutation_module])


async def main():
    store = Store(root_module)
    logger.info("text: %s", store.getters["text"])
    store.commit("set_name", {"prename": "John", "lastname": "Smith"})
    logger.info("action: %r", await store.dispatch("action", {"hello": "Heyho"}))


if __name__ == "__main__":
    setup_logging()
    asyncio.run(main())
