"""StorySpawn: a narrated text adventure driven by a streaming language model.

Each turn the player's action goes to the narrative service, which answers
with one JSON document describing the whole game state:

  1. stream.accumulate     joins the streamed fragments into one reply
  2. parser.parse_response extracts and validates the JSON payload
  3. portraits             resolves character portraits concurrently
  4. reconcile             merges the payload into the previous state
  5. delta.diff            reports what is new for the UI

session.SessionOrchestrator sequences the turn, storage.SessionStore keeps
saved games, tokenizer.tokenize splits narration into renderable segments,
and app.create_app exposes it all over HTTP.
"""
