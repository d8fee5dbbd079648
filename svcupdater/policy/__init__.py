# Copyright 2025 Roger Cibrian
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Upgrade policy for svcupdater.

Modules:

updates : module
    Decision engine comparing the latest release with the installed binary.

Public API:

UpdateDecision : class
    Proceed/skip outcome with reason and optional warning.
decide : function
    Evaluate the decision rules.

"""

from .updates import UpdateDecision, decide

__all__ = ["UpdateDecision", "decide"]
